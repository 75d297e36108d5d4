#!/usr/bin/env python3
"""
jffs2recover - Launcher
Runs the command-line interface from a source checkout without installing.

Usage:
    python run.py tree flash.bin
    python run.py --endian little timeline flash.bin --format csv
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))


def check_dependencies():
    """Check if required dependencies are installed"""
    missing = []

    try:
        import click
        import rich
    except ImportError as e:
        missing.append(f"CLI: {str(e).split()[-1]}")

    return missing


def main():
    """Main launcher entry point"""
    missing = check_dependencies()
    if missing:
        print("⚠️  Missing dependencies:")
        for dep in missing:
            print(f"   • {dep}")
        print("\n💡 Install all dependencies with:")
        print("   pip install -r requirements.txt\n")
        sys.exit(1)

    from jffs2recover.ui.cli import main as cli_main
    cli_main()


if __name__ == "__main__":
    main()
