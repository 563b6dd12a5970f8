"""Command-line interface for ticket field extraction and CSV export.

Provides subcommands for processing a folder of tickets, extracting a single
ticket to JSON, and re-validating a saved result with user corrections.
"""

import argparse
import csv
import json
import mimetypes
import sys
import time
from pathlib import Path

from src.errors import PipelineError
from src.extraction.hybrid import PipelineOrchestrator
from src.extraction.result import FieldExtractionResult
from src.ocr.tesseract_engine import RecognizedDocument, TesseractEngine
from src.utils.config import AppConfig, load_config
from src.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = (
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.tiff",
    "*.tif",
    "*.json",
    "*.txt",
)
_META_COLUMNS = [
    "filename",
    "status",
    "source",
    "processing_time_s",
    "completeness",
    "validation_passed",
    "missing_fields",
    "error",
]


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all supported ticket files in a directory.

    Args:
        input_dir: Directory to scan.

    Returns:
        Sorted list of file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def load_document(file_path: Path, engine: TesseractEngine) -> RecognizedDocument:
    """Turn a file into a recognized document.

    ``.json`` files are OCR dumps with ``text`` and ``symbols``, ``.txt``
    files are raw recognized text, and anything else is an image run
    through OCR.

    Args:
        file_path: Path to the ticket file.
        engine: OCR engine used for images.

    Returns:
        The recognized document.
    """
    suffix = file_path.suffix.lower()
    if suffix == ".json":
        data = json.loads(file_path.read_text(encoding="utf-8"))
        return RecognizedDocument.from_dict(data)
    if suffix == ".txt":
        raw = file_path.read_bytes()
        return RecognizedDocument(
            text=raw.decode("utf-8"), byte_size=len(raw), mime_type="text/plain"
        )
    mime_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
    return engine.recognize(file_path.read_bytes(), mime_type)


def _build_components(config: AppConfig) -> tuple[TesseractEngine, PipelineOrchestrator]:
    engine = TesseractEngine(
        tesseract_cmd=config.ocr.tesseract_cmd,
        default_lang=config.ocr.default_lang,
        psm=config.ocr.psm,
    )
    return engine, PipelineOrchestrator(config)


def process_folder(
    input_dir: Path,
    output_csv: Path,
    use_model: bool = True,
    verbose: bool = False,
    config: AppConfig | None = None,
) -> dict[str, int]:
    """Process all tickets in a folder and export results to CSV.

    Args:
        input_dir: Directory containing ticket files.
        output_csv: Path for the output CSV file.
        use_model: Whether to attempt model-assisted extraction.
        verbose: Whether to print per-file progress.
        config: Application configuration; loaded from disk if ``None``.

    Returns:
        Summary dict with total, successful and failed counts, and how
        many successful tickets failed required-field validation.
    """
    config = config or load_config()
    engine, orchestrator = _build_components(config)

    files = _find_documents(input_dir)
    if not files:
        logger.warning("No documents found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0, "incomplete": 0}

    logger.info("Found %d documents to process", len(files))

    results: list[dict[str, object]] = []
    successful = 0
    failed = 0
    incomplete = 0

    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")

        start_time = time.time()
        try:
            result = _process_single_file(file_path, engine, orchestrator, use_model)
            result["processing_time_s"] = round(time.time() - start_time, 2)
            results.append(result)
            successful += 1
            if not result["validation_passed"]:
                incomplete += 1
        except (PipelineError, OSError, ValueError) as exc:
            logger.error("Failed to process %s: %s", file_path.name, exc)
            results.append(
                {
                    "filename": file_path.name,
                    "status": "failed",
                    "error": str(exc),
                }
            )
            failed += 1

    _write_csv(results, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {
        "total": len(files),
        "successful": successful,
        "failed": failed,
        "incomplete": incomplete,
    }
    _print_summary(summary, output_csv)
    return summary


def _process_single_file(
    file_path: Path,
    engine: TesseractEngine,
    orchestrator: PipelineOrchestrator,
    use_model: bool,
) -> dict[str, object]:
    """Run one ticket through the pipeline and flatten it into a CSV row."""
    document = load_document(file_path, engine)
    extraction = orchestrator.run(document, use_model=use_model)

    row: dict[str, object] = {
        "filename": file_path.name,
        "status": "success",
        "source": str(extraction.source),
        "completeness": round(extraction.validation.completeness, 1),
        "validation_passed": extraction.validation.is_valid,
        "missing_fields": ";".join(extraction.validation.missing_fields),
        "error": None,
    }
    row.update({name: value for name, value in extraction.fields.items() if value is not None})
    return row


def _write_csv(results: list[dict[str, object]], output_path: Path) -> None:
    """Write result rows to a CSV file.

    Args:
        results: List of result dictionaries.
        output_path: Path for the output CSV file.
    """
    if not results:
        return

    all_keys: set[str] = set()
    for r in results:
        all_keys.update(r.keys())

    field_columns = sorted(all_keys - set(_META_COLUMNS))
    columns = [c for c in _META_COLUMNS if c in all_keys] + field_columns

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(results)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    """Print batch processing summary to stdout."""
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Incomplete: {summary.get('incomplete', 0)}")
    print(f"Output:     {output_csv}")


def extract_single(
    file_path: Path,
    use_model: bool = True,
    config: AppConfig | None = None,
) -> dict[str, object]:
    """Process a single ticket and return the serialized result.

    Args:
        file_path: Path to the ticket file.
        use_model: Whether to attempt model-assisted extraction.
        config: Application configuration; loaded from disk if ``None``.

    Returns:
        Dictionary with the filename and the extraction result.
    """
    config = config or load_config()
    engine, orchestrator = _build_components(config)

    document = load_document(file_path, engine)
    extraction = orchestrator.run(document, use_model=use_model)
    return {"filename": file_path.name, **extraction.to_dict()}


def correct_result(
    result_path: Path,
    overrides: dict[str, str],
    config: AppConfig | None = None,
) -> dict[str, object]:
    """Apply corrections to a saved extraction result.

    Args:
        result_path: JSON file written by the ``extract`` command.
        overrides: Field name to corrected value.
        config: Application configuration; loaded from disk if ``None``.

    Returns:
        The amended, re-validated result.

    Raises:
        ValueError: If the file is not a saved extraction result.
    """
    config = config or load_config()
    data = json.loads(result_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{result_path} is not an extraction result object")
    try:
        prior = FieldExtractionResult.from_dict(data)
    except (KeyError, TypeError, AttributeError) as exc:
        raise ValueError(f"malformed extraction result in {result_path}: {exc!r}") from exc
    orchestrator = PipelineOrchestrator(config)
    amended = orchestrator.correct(prior, overrides)

    output: dict[str, object] = {}
    if "filename" in data:
        output["filename"] = data["filename"]
    output.update(amended.to_dict())
    return output


def _parse_override(raw: str) -> tuple[str, str]:
    """Parse a ``field=value`` argument."""
    name, sep, value = raw.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected field=value, got {raw!r}")
    return name.strip(), value


def _emit(result: dict[str, object], output: Path | None) -> None:
    output_str = json.dumps(result, indent=2, ensure_ascii=False)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(output_str, encoding="utf-8")
        print(f"Output written to {output}")
    else:
        print(output_str)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Traffic Ticket Field Extractor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="YAML configuration file"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    batch_parser = subparsers.add_parser("batch", help="Process a folder of tickets")
    batch_parser.add_argument("input_dir", type=Path, help="Input directory with tickets")
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument(
        "--no-model", action="store_true", help="Disable model-assisted extraction"
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    single_parser = subparsers.add_parser("extract", help="Process a single ticket")
    single_parser.add_argument("file", type=Path, help="Ticket file to process")
    single_parser.add_argument(
        "--no-model", action="store_true", help="Disable model-assisted extraction"
    )
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    correct_parser = subparsers.add_parser(
        "correct", help="Apply corrections to a saved result"
    )
    correct_parser.add_argument("result", type=Path, help="Result JSON from 'extract'")
    correct_parser.add_argument(
        "-s",
        "--set",
        dest="overrides",
        action="append",
        type=_parse_override,
        default=[],
        metavar="FIELD=VALUE",
        help="Corrected field value (repeatable)",
    )
    correct_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(
            args.input_dir,
            args.output,
            not args.no_model,
            args.verbose,
            config,
        )
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            result = extract_single(args.file, not args.no_model, config)
        except (PipelineError, OSError, ValueError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        _emit(result, args.output)
    elif args.command == "correct":
        if not args.result.exists():
            print(f"Error: {args.result} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            result = correct_result(args.result, dict(args.overrides), config)
        except (PipelineError, OSError, ValueError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        _emit(result, args.output)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
