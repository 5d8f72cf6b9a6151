"""
CLI interface for property extraction.

Usage:
    python -m property_pipeline.run extract --sections paper.json --properties template.yaml
    python -m property_pipeline.run extract --sections paper.json --properties template.yaml \\
        --config configs/base.yaml --model claude-haiku --output results.json
    python -m property_pipeline.run extract --sections paper.json --properties template.yaml --no-llm --explain
    python -m property_pipeline.run show-config --config configs/base.yaml
"""

import argparse
import json
import logging
import sys

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _load_settings(args):
    from ..config import PipelineSettings, load_config

    if args.config:
        return load_config(args.config, base_path=args.base_config)
    return PipelineSettings()


def cmd_extract(args):
    """Extract properties from one document."""
    from ..config import validate_config
    from .runner import PropertyRunner, load_properties, load_sections

    settings = _load_settings(args)
    if args.model:
        settings = settings.model_copy(update={
            "provider": settings.provider.model_copy(update={"model": args.model}),
        })
    if args.debug:
        settings = settings.model_copy(update={
            "extraction": settings.extraction.model_copy(update={"debug_mode": True}),
        })

    for warning in validate_config(settings):
        logger.warning(f"Config warning: {warning}")

    sections = load_sections(args.sections)
    properties = load_properties(args.properties)

    print(f"\n{'='*60}")
    print("EXTRACTING PROPERTIES")
    print(f"{'='*60}")
    print(f"Sections: {args.sections} ({len(sections)} sections)")
    print(f"Properties: {args.properties} ({len(properties)} properties)")
    print(f"Config hash: {settings.config_hash()}")
    print(f"Model: {'none (pattern extraction only)' if args.no_llm else settings.provider.model}")
    print(f"Multi-property analysis: {settings.extraction.enable_multi_property_analysis}")
    print()

    runner = PropertyRunner(settings, use_llm=not args.no_llm)
    run = runner.run(sections, properties, name=args.name)

    if args.output:
        runner.save_run(run, args.output)

    trace = runner.orchestrator.last_trace
    if args.trace and trace is not None:
        trace.save(args.trace)

    print(f"\n{'='*60}")
    print("RESULTS")
    print(f"{'='*60}")
    for key, values in run.results.items():
        print(f"\n{key}: {len(values)} values")
        for value in values:
            print(f"  - {value['value']!r} ({value['confidence']:.2f}, {value['source']}) [{value['section']}]")

    print(f"\n{'='*60}")
    print("STATISTICS")
    print(f"{'='*60}")
    for key in ("total_extractions", "llm_calls", "fallbacks_used", "parse_errors", "validation_errors"):
        print(f"  {key}: {run.stats.get(key, 0)}")
    print(f"  sentences used: {run.stats.get('sentence_pool_stats', {}).get('total_used', 0)}")

    if args.explain and trace is not None:
        print(f"\n{'='*60}")
        print("DECISION TRACE")
        print(f"{'='*60}")
        for prop_trace in trace.properties.values():
            print(prop_trace.explain_decision())

    if args.output:
        print(f"\nOutput: {args.output}")


def cmd_show_config(args):
    """Print resolved configuration and its warnings."""
    import yaml

    from ..config import validate_config

    settings = _load_settings(args)

    print(f"\n{'='*60}")
    print(f"CONFIG: {settings.name or 'default'} (hash: {settings.config_hash()})")
    print(f"{'='*60}")
    if args.json:
        print(json.dumps(settings.model_dump(), indent=2))
    else:
        print(yaml.dump(settings.model_dump(), default_flow_style=False, sort_keys=False))

    warnings = validate_config(settings)
    if warnings:
        print("Warnings:")
        for warning in warnings:
            print(f"  - {warning}")
    else:
        print("No warnings.")


def main():
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="Property Extraction Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Extract command
    extract_parser = subparsers.add_parser("extract", help="Extract properties from a document")
    extract_parser.add_argument(
        "--sections",
        required=True,
        help="Path to JSON file mapping section names to text",
    )
    extract_parser.add_argument(
        "--properties",
        required=True,
        help="Path to YAML or JSON list of property definitions",
    )
    extract_parser.add_argument(
        "--config",
        help="Path to config file (base.yaml or override)",
    )
    extract_parser.add_argument(
        "--base-config",
        help="Base config that --config is merged onto",
    )
    extract_parser.add_argument(
        "--model",
        help="Model name or alias (overrides config)",
    )
    extract_parser.add_argument(
        "--output",
        help="Path to save results JSON",
    )
    extract_parser.add_argument(
        "--name",
        help="Run name (overrides config)",
    )
    extract_parser.add_argument(
        "--no-llm",
        action="store_true",
        help="Skip the model and use pattern extraction only",
    )
    extract_parser.add_argument(
        "--trace",
        help="Path to save the decision trace JSON",
    )
    extract_parser.add_argument(
        "--explain",
        action="store_true",
        help="Print the decision trace for each property",
    )
    extract_parser.add_argument(
        "--debug",
        action="store_true",
        help="Log section coverage and sentence pool usage",
    )

    # Show-config command
    config_parser = subparsers.add_parser("show-config", help="Show resolved configuration")
    config_parser.add_argument(
        "--config",
        help="Path to config file (defaults used if omitted)",
    )
    config_parser.add_argument(
        "--base-config",
        help="Base config that --config is merged onto",
    )
    config_parser.add_argument(
        "--json",
        action="store_true",
        help="Print as JSON instead of YAML",
    )

    args = parser.parse_args()

    if args.command == "extract":
        cmd_extract(args)
    elif args.command == "show-config":
        cmd_show_config(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
