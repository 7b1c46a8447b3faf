#!/usr/bin/env python3
"""

Usage:
    python Main.py [--url ws://localhost:8080/ws/reflector] [--offline]

Or
    python -m session_clock [--url ws://localhost:8080/ws/reflector] [--offline]
"""

from session_clock.__main__ import main

if __name__ == "__main__":
    main()
