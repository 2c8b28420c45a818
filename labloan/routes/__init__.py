from flask import current_app


def runtime(name: str):
    """Per-app collaborators wired by create_app (clock, notifier, scheduler...)."""
    return current_app.extensions["labloan"][name]
