"""Allow ``python -m skillmesh``."""

from skillmesh.cli import main

main()
