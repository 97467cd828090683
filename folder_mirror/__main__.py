"""Allow running as ``python -m folder_mirror``."""

from .cli import main

if __name__ == "__main__":
    main()
