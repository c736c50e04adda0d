#!/usr/bin/env python3
"""
Backend startup wrapper.

Usage: python -m resume_ninja.start_backend
"""
import os
import sys

if __name__ == "__main__":
    print("[Backend] Starting Resume Ninja usage API")
    print("[Backend] Press CTRL+C to stop")
    try:
        import uvicorn
        uvicorn.run(
            "resume_ninja.main:app",
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            reload=False,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\n[Backend] Shutting down...")
        sys.exit(0)
