#!/usr/bin/env python3
"""
Shaho Premium Preflight - CLI Entry Point

Runs the standard remuneration determinations and premium calculations on
payroll data and reports revisions and bonus reports that need filing.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict
import yaml


def load_config(config_path: Path) -> Dict:
    """
    Load and validate YAML configuration file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        SystemExit(2): If config file cannot be read or is invalid
    """
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML format in config file: {e}", file=sys.stderr)
        sys.exit(2)
    except IOError as e:
        print(f"Error: Cannot read config file: {e}", file=sys.stderr)
        sys.exit(2)

    if not isinstance(config, dict):
        print("Error: Config file must contain a YAML dictionary", file=sys.stderr)
        sys.exit(2)

    # Validate required keys
    required_keys = ['target_year', 'region', 'rates']
    for key in required_keys:
        if key not in config:
            print(f"Error: Missing required config key: {key}", file=sys.stderr)
            sys.exit(2)

    try:
        target_year = int(config['target_year'])
        if target_year < 2000 or target_year > 2100:
            print("Error: target_year must be a valid year", file=sys.stderr)
            sys.exit(2)
    except (ValueError, TypeError):
        print("Error: Invalid target_year (must be numeric)", file=sys.stderr)
        sys.exit(2)

    if not isinstance(config['region'], str) or not config['region'].strip():
        print("Error: region must be a non-empty string", file=sys.stderr)
        sys.exit(2)

    # Validate rates
    rates = config['rates']
    if not isinstance(rates, list) or not rates:
        print("Error: rates must be a non-empty list", file=sys.stderr)
        sys.exit(2)

    for index, entry in enumerate(rates, start=1):
        if not isinstance(entry, dict):
            print(f"Error: rates entry {index} must be a dictionary", file=sys.stderr)
            sys.exit(2)
        for scheme in ['health', 'care', 'pension']:
            scheme_rates = entry.get(scheme)
            if not isinstance(scheme_rates, dict) or 'employee' not in scheme_rates or 'employer' not in scheme_rates:
                print(f"Error: rates entry {index}: {scheme} must contain employee and employer", file=sys.stderr)
                sys.exit(2)
            try:
                if float(scheme_rates['employee']) < 0 or float(scheme_rates['employer']) < 0:
                    print(f"Error: rates entry {index}: {scheme} rates must be non-negative", file=sys.stderr)
                    sys.exit(2)
            except (ValueError, TypeError):
                print(f"Error: rates entry {index}: {scheme} rates must be numeric", file=sys.stderr)
                sys.exit(2)

    # Validate grade_table
    grade_table = config.get('grade_table', 'default')
    if grade_table not in (None, 'default') and not isinstance(grade_table, list):
        print("Error: grade_table must be 'default' or a list of rows", file=sys.stderr)
        sys.exit(2)

    return config


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Shaho Premium Preflight - standard remuneration and premium checks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  shaho-preflight -e employees.csv -m compensation.csv -c config.yaml
  shaho-preflight -e employees.csv -m compensation.csv -b bonuses.csv -c config.yaml -y 2025
        """
    )

    parser.add_argument(
        "--employees", "-e",
        type=str,
        required=True,
        help="Path to employee CSV file"
    )

    parser.add_argument(
        "--compensation", "-m",
        type=str,
        required=True,
        help="Path to monthly compensation CSV file"
    )

    parser.add_argument(
        "--bonuses", "-b",
        type=str,
        default=None,
        help="Path to bonus payment CSV file (optional)"
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        required=True,
        help="Path to YAML configuration file"
    )

    parser.add_argument(
        "--year", "-y",
        type=int,
        default=None,
        help="Target year (default: target_year from config)"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log each determination to stderr"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="Shaho Premium Preflight 1.0.0"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    # Validate input file paths
    employees_path = Path(args.employees)
    compensation_path = Path(args.compensation)
    config_path = Path(args.config)
    bonuses_path = Path(args.bonuses) if args.bonuses else None

    for label, path in [("Employee", employees_path), ("Compensation", compensation_path),
                        ("Config", config_path), ("Bonus", bonuses_path)]:
        if path and not path.exists():
            print(f"Error: {label} file not found: {path}", file=sys.stderr)
            sys.exit(2)

    try:
        # Load configuration
        config = load_config(config_path)

        # Import engine
        from shaho.engine import (
            EngineContext,
            load_bonus_data,
            load_compensation_data,
            load_employees,
            run_engine,
        )

        try:
            context = EngineContext.from_config(config, args.year)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(2)

        employees = load_employees(employees_path)
        compensation = load_compensation_data(compensation_path)
        bonuses = load_bonus_data(bonuses_path) if bonuses_path else None

        status, exit_code, results, findings = run_engine(employees, compensation, bonuses, context)

        from shaho.engine import RED_FINDINGS, YELLOW_FINDINGS
        red = [f for f in findings if f['finding_type'] in RED_FINDINGS]
        yellow = [f for f in findings if f['finding_type'] in YELLOW_FINDINGS]

        # Print results
        print(f"STATUS: {status}", file=sys.stdout)
        print(f"Year: {context.year}  Region: {context.region}  Employees: {len(results)}", file=sys.stdout)
        print(f"RED Findings: {len(red)}", file=sys.stdout)
        print(f"YELLOW Findings: {len(yellow)}", file=sys.stdout)

        if status in ["RED", "YELLOW"]:
            employee_ids = []
            for finding in red + yellow:
                if finding['employee_id'] not in employee_ids:
                    employee_ids.append(finding['employee_id'])
            top_10 = employee_ids[:10]
            if top_10:
                print(f"Top employee IDs: {', '.join(top_10)}", file=sys.stdout)

        for finding in red + yellow:
            month = f" [{finding['month']:02d}]" if finding['month'] else ""
            print(f"{finding['finding_type']} {finding['employee_id']}{month}: {finding['finding_description']}",
                  file=sys.stdout)

        sys.exit(exit_code)

    except KeyboardInterrupt:
        print("\nError: Interrupted by user", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc(file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
