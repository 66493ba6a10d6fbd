"""
Console entry point
 - Runs the deck engine against a logging surface, no hardware needed
 - Settings come from CIDERDECK_SETTINGS and .env
"""
import sys
from console_ui.app import main

if __name__ == "__main__":
    sys.exit(main())
