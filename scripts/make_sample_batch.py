#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
from pathlib import Path


SAMPLE_TEXT = "Certificate issued by the civil registry. " * 12


def _page(file_id: str, number: int, words: int, language: str) -> dict:
    return {
        "fileId": file_id,
        "pageNumber": number,
        "wordCount": words,
        "confidenceScore": 0.94,
        "detectedLanguage": language,
        "rawText": SAMPLE_TEXT,
    }


def build_batch(batch_id: str, language: str) -> dict:
    files = [
        {
            "id": f"{batch_id}-f1",
            "filename": "birth-certificate.pdf",
            "status": "completed",
            "pageCount": 2,
            "wordCount": 480,
            "fileSizeBytes": 182_000,
        },
        {
            "id": f"{batch_id}-f2",
            "filename": "diploma_part1.pdf",
            "originalFilename": "diploma.pdf",
            "status": "completed",
            "pageCount": 10,
            "wordCount": 2600,
            "fileGroupId": f"{batch_id}-g1",
            "chunkIndex": 0,
        },
        {
            "id": f"{batch_id}-f3",
            "filename": "diploma_part2.pdf",
            "originalFilename": "diploma.pdf",
            "status": "completed",
            "pageCount": 4,
            "wordCount": 900,
            "fileGroupId": f"{batch_id}-g1",
            "chunkIndex": 1,
        },
        {
            "id": f"{batch_id}-f4",
            "filename": "passport-scan.jpg",
            "status": "processing",
        },
    ]
    pages = {
        f"{batch_id}-f1": [_page(f"{batch_id}-f1", 1, 260, language), _page(f"{batch_id}-f1", 2, 220, language)],
        f"{batch_id}-f2": [_page(f"{batch_id}-f2", n, 260, language) for n in range(1, 11)],
        f"{batch_id}-f3": [_page(f"{batch_id}-f3", n, 225, language) for n in range(1, 5)],
    }
    return {"files": files, "pages": pages}


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a sample OCR batch for the in-memory gateway")
    parser.add_argument("--output", required=True, help="Output JSON path")
    parser.add_argument("--batch-id", default="batch-demo-0001", help="Batch identifier")
    parser.add_argument("--language", default="es", help="ISO 639-1 code detected on every page")
    args = parser.parse_args()

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)

    payload = {"batches": {args.batch_id: build_batch(args.batch_id, args.language)}}
    with output.open("w", encoding="utf-8") as fp:
        json.dump(payload, fp, indent=2)

    print(f"Sample batch written: {output} (set ESTIMATE_SAMPLE_DATA to load it)")


if __name__ == "__main__":
    main()
