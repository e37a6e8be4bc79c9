"""Allow running as: python -m whisper_refine"""

from .cli import cli_main

if __name__ == "__main__":
    cli_main()
