"""Entry point for `python -m murmur`."""

from murmur.main import run

if __name__ == "__main__":
    run()
