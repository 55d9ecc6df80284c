"""ASGI entrypoint for the ProcessMaster API."""

from processmaster.api.app import create_app
from processmaster.containers import build_container

app = create_app(build_container())
