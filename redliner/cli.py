import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from redliner import __version__
from redliner.config import configure_logging, load_config
from redliner.diff import generate_edits_from_text
from redliner.errors import RedlinerError
from redliner.ingest import extract_text_from_stream
from redliner.markup import edits_to_markdown, parse_markdown_edits
from redliner.merge import MergeConflictError, MergeStrategy, merge_edit_files
from redliner.models import EditConfig, SessionResult
from redliner.session import apply_config, find_in_document, read_file_bytes, validate_config

logger = structlog.get_logger(__name__)


def _read_docx_text(path: Path, markup: bool = False) -> str:
    return extract_text_from_stream(read_file_bytes(path), markup=markup)


def _config_from_args(args: argparse.Namespace) -> EditConfig:
    return load_config(
        config_path=args.config,
        inline=args.inline,
        input_path=args.input,
        output_path=getattr(args, "output", None),
        edits_path=args.edits,
        author_name=args.author_name,
        author_email=args.author_email,
    )


def _print_skips(result: SessionResult):
    skipped = [r for r in result.results if r.skipped]
    if not skipped:
        return
    print("Skipped edits:")
    for r in skipped:
        print(f"  [{r.index}] {r.edit.describe()}: {r.reason.value}")


def handle_apply(args) -> int:
    config = _config_from_args(args)
    print(f"Applying {len(config.edits)} edits to {config.input}...", file=sys.stderr)

    result = apply_config(config, normalize=args.normalize)

    print(f"Applied: {result.applied}")
    print(f"Skipped: {result.skipped}")
    _print_skips(result)
    print(f"Saved to {config.output}", file=sys.stderr)

    if args.strict and result.skipped:
        return 1
    return 0


def handle_validate(args) -> int:
    config = _config_from_args(args)
    result = validate_config(config, normalize=args.normalize)

    for r in result.results:
        if r.skipped:
            print(f"[{r.index}] {r.edit.describe()}: SKIP ({r.reason.value})")
        else:
            print(f"[{r.index}] {r.edit.describe()}: {r.applied_count} match(es)")

    print(f"Valid: {result.applied}/{len(result.results)}")
    return 1 if result.skipped else 0


def handle_extract(args) -> int:
    text = _read_docx_text(args.input, markup=args.markup)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(text)
        print(f"Extracted text to {args.output}", file=sys.stderr)
    else:
        print(text)
    return 0


def handle_find(args) -> int:
    found = find_in_document(read_file_bytes(args.input), args.find)
    for match, context in found:
        print(f"{match.occurrence}\t{match.start}\t{context}")
    print(f"{len(found)} match(es)", file=sys.stderr)
    return 0


def handle_diff(args) -> int:
    text_orig = _read_docx_text(args.original)

    if args.modified.suffix.lower() == ".docx":
        text_mod = _read_docx_text(args.modified)
    else:
        with open(args.modified, "r", encoding="utf-8") as f:
            text_mod = f.read()

    edits = generate_edits_from_text(text_orig, text_mod)
    output = json.dumps([e.model_dump(exclude_defaults=True) for e in edits], indent=2, ensure_ascii=False)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output + "\n")
        print(f"Wrote {len(edits)} edits to {args.output}", file=sys.stderr)
    else:
        print(output)
    return 0


def _write_json(path: Path, payload) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def handle_merge(args) -> int:
    print(f"Merging {len(args.files)} edit file(s)...", file=sys.stderr)
    try:
        result = merge_edit_files(args.files, args.conflict)
    except MergeConflictError as e:
        print(f"Merge failed: {e}", file=sys.stderr)
        print("Conflicts:")
        for conflict in e.conflicts:
            print(f"  {conflict.describe()}")
        return 1

    _write_json(args.output, result.to_payload([str(p) for p in args.files]))

    print(f"Total edits: {len(result.edits)}")
    print(f"Source files: {result.source_count}")
    if result.conflicts:
        print(f"Conflicts resolved: {len(result.conflicts)} ({args.conflict})")
    print(f"Saved to {args.output}", file=sys.stderr)

    if args.validate:
        config = EditConfig(input=args.validate, edits=result.edits)
        session = validate_config(config)
        for r in session.results:
            if r.skipped:
                print(f"[{r.index}] {r.edit.describe()}: SKIP ({r.reason.value})")
        print(f"Valid: {session.applied}/{len(session.results)}")
        if session.skipped:
            return 1
    return 0


def handle_parse_edits(args) -> int:
    with open(args.input, "r", encoding="utf-8") as f:
        parsed = parse_markdown_edits(f.read())

    _write_json(args.output, parsed.to_payload())
    print(f"Parsed {len(parsed.edits)} edits to {args.output}", file=sys.stderr)
    for row in parsed.skipped_rows:
        print(f"Skipped row: {row}")
    return 1 if parsed.skipped_rows else 0


def handle_to_markdown(args) -> int:
    config = load_config(edits_path=args.input)
    author = config.author if args.with_author else None
    with open(args.output, "w", encoding="utf-8") as f:
        f.write(edits_to_markdown(config.edits, author))
    print(f"Converted {len(config.edits)} edits to {args.output}", file=sys.stderr)
    return 0


def _add_config_arguments(parser: argparse.ArgumentParser, with_output: bool = True):
    parser.add_argument("-c", "--config", type=Path, help="JSON config with input, output, author and edits")
    parser.add_argument("--inline", type=str, help="The same config as an inline JSON string")
    parser.add_argument("-i", "--input", type=Path, help="Input DOCX (overrides the config)")
    if with_output:
        parser.add_argument("-o", "--output", type=Path, help="Output DOCX (overrides the config)")
    parser.add_argument("-e", "--edits", type=Path, help="JSON file holding an edits array or a full config")
    parser.add_argument("--author-name", type=str, help="Author name for Track Changes (default: current user)")
    parser.add_argument("--author-email", type=str, help="Author email stored with each change")
    parser.add_argument("--normalize", action="store_true", help="Merge identically formatted runs before matching")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="redliner", description="Redliner: literal find/replace as DOCX tracked changes")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_apply = subparsers.add_parser("apply", help="Apply edits to a DOCX as tracked changes")
    _add_config_arguments(p_apply)
    p_apply.add_argument("--strict", action="store_true", help="Exit with status 1 when any edit is skipped")
    p_apply.set_defaults(func=handle_apply)

    p_validate = subparsers.add_parser("validate", help="Report what each edit would change, without saving")
    _add_config_arguments(p_validate, with_output=False)
    p_validate.set_defaults(func=handle_validate)

    p_extract = subparsers.add_parser("extract", help="Print the searchable text of a DOCX")
    p_extract.add_argument("input", type=Path, help="Input DOCX file")
    p_extract.add_argument("--markup", action="store_true", help="Show tracked changes as CriticMarkup")
    p_extract.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p_extract.set_defaults(func=handle_extract)

    p_find = subparsers.add_parser("find", help="List the occurrences of a literal string")
    p_find.add_argument("input", type=Path, help="Input DOCX file")
    p_find.add_argument("find", type=str, help="Literal text to look for")
    p_find.set_defaults(func=handle_find)

    p_diff = subparsers.add_parser("diff", help="Generate edits turning a DOCX into a modified text")
    p_diff.add_argument("original", type=Path, help="Original DOCX")
    p_diff.add_argument("modified", type=Path, help="Modified text file or DOCX")
    p_diff.add_argument("-o", "--output", type=Path, help="Write the edits JSON here (default: stdout)")
    p_diff.set_defaults(func=handle_diff)

    p_merge = subparsers.add_parser("merge", help="Merge edit files from several reviewers into one")
    p_merge.add_argument("files", type=Path, nargs="+", help="Edit JSON files, in priority order")
    p_merge.add_argument("-o", "--output", type=Path, required=True, help="Merged edits JSON")
    p_merge.add_argument(
        "-c",
        "--conflict",
        choices=[s.value for s in MergeStrategy],
        default=MergeStrategy.ERROR.value,
        help="How to settle two edits selecting the same match (default: error)",
    )
    p_merge.add_argument("--validate", type=Path, metavar="DOCX", help="Check the merged edits against a document")
    p_merge.set_defaults(func=handle_merge)

    p_parse = subparsers.add_parser("parse-edits", help="Convert a markdown edit table to JSON")
    p_parse.add_argument("-i", "--input", type=Path, required=True, help="Markdown edits (.md)")
    p_parse.add_argument("-o", "--output", type=Path, required=True, help="Edits JSON")
    p_parse.set_defaults(func=handle_parse_edits)

    p_to_md = subparsers.add_parser("to-markdown", help="Convert edits JSON to a markdown edit table")
    p_to_md.add_argument("-i", "--input", type=Path, required=True, help="Edits JSON (array or config)")
    p_to_md.add_argument("-o", "--output", type=Path, required=True, help="Markdown edits (.md)")
    p_to_md.add_argument("--with-author", action="store_true", help="Include the author in the metadata")
    p_to_md.set_defaults(func=handle_to_markdown)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose)

    try:
        return args.func(args)
    except (RedlinerError, ValueError, OSError) as e:
        logger.debug("Command failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
