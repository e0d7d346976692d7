"""Library CLI - Helper Package

- Input validation shared by the catalog and directory (validators.py)
- CLI output rendering in plain, json and rich modes (ui_helpers.py)
"""
