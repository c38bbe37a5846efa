"""Allow ``python -m caddy_tap.cli``."""

from .main import main

main()
