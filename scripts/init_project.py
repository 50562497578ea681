#!/usr/bin/env python3
"""
Initialize the freight lifecycle engine.

This script sets up the project by:
- Checking the Python version
- Loading the optional .env file
- Validating configuration files
- Creating the SQLite schema
- Checking that required packages import
"""

import os
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv


def check_python_version() -> bool:
    """Verify Python version is 3.12 or higher."""
    if sys.version_info < (3, 12):
        print(f"❌ Python 3.12+ required. Current version: {sys.version}")
        return False
    print(f"✅ Python version: {sys.version_info.major}.{sys.version_info.minor}")
    return True


def load_env_file() -> bool:
    """Load .env if present; every variable has a default."""
    env_path = Path(".env")
    if not env_path.exists():
        print("⚠️  .env file not found, using defaults")
        print("   To customise: cp .env.example .env")
        return True
    load_dotenv(env_path)
    print("✅ .env loaded")

    database_url = os.getenv("DATABASE_URL", "")
    if database_url and not database_url.startswith("sqlite:///"):
        print(f"❌ DATABASE_URL must use sqlite:/// (got {database_url})")
        return False
    return True


def check_config_files() -> bool:
    """Validate config.yaml exists and has the expected sections."""
    path = Path("config/config.yaml")
    if not path.exists():
        print(f"❌ Main configuration not found: {path}")
        return False
    print("✅ Main configuration exists")

    try:
        with open(path) as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        print(f"❌ Error parsing config.yaml: {e}")
        return False

    if not config:
        print("❌ config.yaml is empty")
        return False

    from freight_lifecycle.core.config import LifecycleSettings

    try:
        settings = LifecycleSettings(**config.get("lifecycle", {}))
    except ValueError as e:
        print(f"❌ Invalid lifecycle section: {e}")
        return False

    print(f"✅ config.yaml is valid (max_conflict_retries={settings.max_conflict_retries})")
    return True


def initialize_database() -> bool:
    """Create the SQLite schema at DATABASE_URL."""
    from freight_lifecycle.core.config import ConfigManager
    from freight_lifecycle.store.sqlite import SqliteTransitionStore

    config = ConfigManager()
    try:
        db_path = config.get_database_path()
    except ValueError as e:
        print(f"❌ {e}")
        return False

    store = SqliteTransitionStore(db_path=db_path, config_manager=config)
    store.close()
    print(f"✅ Database schema ready: {db_path}")
    return True


def test_imports() -> bool:
    """Test that critical packages can be imported."""
    required_packages = [
        "pydantic",
        "pydantic_settings",
        "structlog",
        "yaml",
        "dotenv",
    ]

    missing = []
    for package in required_packages:
        try:
            __import__(package)
        except ImportError:
            missing.append(package)

    if missing:
        print(f"❌ Missing packages: {', '.join(missing)}")
        print("   Run: pip install -e .[test]")
        return False

    print("✅ All required packages installed")
    return True


def display_next_steps():
    """Show user what to do next."""
    print("\n" + "=" * 60)
    print("🎉 Project initialization complete!")
    print("=" * 60)
    print("\nNext steps:")
    print("\n1. Review config/config.yaml")
    print("2. Run the tests:")
    print("   pytest")
    print("3. Try the example lifecycle:")
    print("   python -m freight_lifecycle.service")
    print("\n" + "=" * 60)


def main():
    """Run all initialization checks."""
    print("=" * 60)
    print("Freight Lifecycle Engine - Initialization")
    print("=" * 60)
    print()

    checks = [
        ("Python version", check_python_version),
        ("Package imports", test_imports),
        (".env file", load_env_file),
        ("Configuration files", check_config_files),
        ("Database", initialize_database),
    ]

    passed = 0
    failed = 0

    for name, check_func in checks:
        print(f"\nChecking {name}...")
        if check_func():
            passed += 1
        else:
            failed += 1

    print("\n" + "=" * 60)
    print(f"Results: {passed} passed, {failed} failed")
    print("=" * 60)

    if failed == 0:
        display_next_steps()
        return 0
    else:
        print("\n❌ Some checks failed. Please fix the issues above.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
