"""Allow ``python -m certreq``."""

from certreq.cli.main import main

if __name__ == "__main__":
    main()
