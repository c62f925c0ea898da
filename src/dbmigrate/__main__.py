"""Allow ``python -m dbmigrate``."""

from dbmigrate.cli.app import run

if __name__ == "__main__":
    run()
