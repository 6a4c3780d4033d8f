#!/usr/bin/env python3
"""
Organization Ledger Entry Point

Starts the FastAPI server using the ORG_LEDGER_* configuration.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from org_ledger.api import run_server
from org_ledger.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("📒 Starting Organization Ledger...")
    print(f"🗄️  Storage: {config.database_url}")
    print("💰 All amounts use Decimal precision")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(debug=False)
    except KeyboardInterrupt:
        print("\n👋 Shutting down Organization Ledger...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
