import sys

from holdrace.main import run_cli

sys.exit(run_cli())
