#!/usr/bin/env python3
"""
Simple startup script for the SmartLMS portal
"""

import os
import sys

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

try:
    from lms_app.config import SUPABASE_URL, SUPABASE_ANON_KEY
    from main import run_app

    if not SUPABASE_URL or not SUPABASE_ANON_KEY:
        print("SUPABASE_URL and SUPABASE_ANON_KEY must be set before starting the portal.")
        sys.exit(1)

    print("Starting SmartLMS portal...")
    run_app()

except ImportError as e:
    print(f"Missing dependencies: {e}")
    print("Please install the project: pip install -e .")
    sys.exit(1)
