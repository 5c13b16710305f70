"""Console entry point: ``tradeoff-study [--port N] [--headless] [-- extra streamlit args]``."""
import argparse
import os
import sys
from pathlib import Path

from streamlit.web import cli as stcli

APP_FILE = Path(__file__).resolve().with_name("main.py")


def build_argv(port: str, headless: bool, extra=()):
    argv = ["streamlit", "run", str(APP_FILE), "--server.port", str(port)]
    if headless:
        argv += ["--server.headless", "true"]
    return argv + list(extra)


def run_streamlit(args=None):
    parser = argparse.ArgumentParser(prog="tradeoff-study", description="Run the trade-off study app.")
    parser.add_argument("--port", default=os.getenv("STUDY_PORT", "8501"))
    parser.add_argument("--headless", action="store_true", help="do not open a browser window")
    parser.add_argument("extra", nargs=argparse.REMAINDER, help="passed through to `streamlit run`")
    opts = parser.parse_args(args)

    extra = opts.extra[1:] if opts.extra[:1] == ["--"] else opts.extra
    sys.argv = build_argv(opts.port, opts.headless, extra)
    print(f"🚀 Starting study app on port {opts.port}")
    sys.exit(stcli.main())


if __name__ == "__main__":
    run_streamlit()
