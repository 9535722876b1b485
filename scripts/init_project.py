#!/usr/bin/env python3
"""
Initialize a tripflow deployment.

This script sets up the project by:
- Checking the .env file and the settings it provides
- Validating config/config.yaml against the business config schema
- Creating the audit log directory
- Checking that required packages import
"""

import os
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

REQUIRED_PACKAGES = ["pydantic", "pydantic_settings", "yaml", "dotenv", "structlog"]


def check_python_version() -> bool:
    """Verify Python version is 3.10 or higher."""
    if sys.version_info < (3, 10):
        print(f"❌ Python 3.10+ required. Current version: {sys.version}")
        return False
    print(f"✅ Python version: {sys.version_info.major}.{sys.version_info.minor}")
    return True


def check_env_file() -> bool:
    """Check if .env file exists."""
    if not Path(".env").exists():
        print("❌ .env file not found")
        print("   Run: cp .env.example .env")
        return False
    print("✅ .env file exists")
    return True


def load_and_validate_env() -> bool:
    """Load .env and check the values tripflow reads."""
    load_dotenv()

    level = os.getenv("TRIPFLOW_LOG_LEVEL", "INFO").upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        print(f"❌ TRIPFLOW_LOG_LEVEL is not a log level: {level}")
        return False

    block = os.getenv("TRIPFLOW_COMPLIANCE_BLOCK_EXPIRED")
    if block is not None:
        mode = "blocking" if block.lower() in ("1", "true", "yes", "on") else "advisory"
        print(f"✅ Compliance mode overridden from environment: {mode}")

    print("✅ Environment variables valid")
    return True


def check_config_files() -> bool:
    """Validate config.yaml parses and matches the business config schema."""
    from tripflow.core.config import BusinessConfig

    path = Path("config/config.yaml")
    if not path.exists():
        print(f"❌ Main configuration not found: {path}")
        return False

    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        print(f"❌ Error parsing config.yaml: {e}")
        return False

    try:
        config = BusinessConfig(**raw)
    except ValidationError as e:
        print(f"❌ config.yaml does not match the schema:\n{e}")
        return False

    thresholds = config.compliance
    if not thresholds.critical_days <= thresholds.urgent_days <= thresholds.warning_days:
        print("❌ compliance thresholds must satisfy critical_days <= urgent_days <= warning_days")
        return False

    print(f"✅ config.yaml is valid (trip numbers look like {config.trips.number_prefix}{1:0{config.trips.number_width}d})")
    return True


def create_data_directories() -> bool:
    """Create the directory the JSON-lines audit sink writes into."""
    Path("logs").mkdir(parents=True, exist_ok=True)
    print("✅ Created logs directory")
    return True


def test_imports() -> bool:
    """Test that critical packages can be imported."""
    missing = []
    for package in REQUIRED_PACKAGES:
        try:
            __import__(package)
        except ImportError:
            missing.append(package)

    if missing:
        print(f"❌ Missing packages: {', '.join(missing)}")
        print("   Run: pip install -e .")
        return False

    print("✅ All required packages installed")
    return True


def main():
    """Run all initialization checks."""
    print("=" * 60)
    print("Tripflow - Initialization")
    print("=" * 60)

    checks = [
        ("Python version", check_python_version),
        ("Package imports", test_imports),
        (".env file", check_env_file),
        ("Environment variables", load_and_validate_env),
        ("Configuration files", check_config_files),
        ("Data directories", create_data_directories),
    ]

    failed = 0
    for name, check_func in checks:
        print(f"\nChecking {name}...")
        if not check_func():
            failed += 1

    print("\n" + "=" * 60)
    print(f"Results: {len(checks) - failed} passed, {failed} failed")
    print("=" * 60)

    if failed:
        print("\n❌ Some checks failed. Please fix the issues above.")
        return 1
    print("\nRun the test suite with: pytest")
    return 0


if __name__ == "__main__":
    sys.exit(main())
