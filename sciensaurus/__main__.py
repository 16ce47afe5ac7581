"""Entry point for `python -m sciensaurus`.

Delegates to `python -m sciensaurus.web.web_ui`, which serves the API and dashboard.
"""
import runpy
runpy.run_module("sciensaurus.web.web_ui", run_name="__main__", alter_sys=True)
