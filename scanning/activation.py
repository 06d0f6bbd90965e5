# scanning/activation.py
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Callable, Optional
import requests
from flask import current_app


class ExtensionActivator(ABC):
    """
    Turns a quarantined (inactive) extension version live once a reviewer
    allows it. Implementations return False instead of raising.
    """

    @abstractmethod
    def activate(self, namespace: str, extension: str, version: str, target_platform: Optional[str]) -> bool:
        ...


class HttpActivator(ExtensionActivator):
    """
    Calls the registry's activation endpoint:
      POST {EXTENSION_ACTIVATION_URL}
      {"namespace": ..., "extension": ..., "version": ..., "target_platform": ...}
    """

    def __init__(self, url: Optional[str], timeout: float = 5.0, token: Optional[str] = None,
                 session_factory: Callable[[], requests.Session] = requests.Session):
        self.url = url
        self.timeout = timeout
        self.token = token
        # one session per call; request threads never share it
        self.session_factory = session_factory

    def activate(self, namespace, extension, version, target_platform) -> bool:
        if not self.url:
            current_app.logger.warning(
                "[activation] EXTENSION_ACTIVATION_URL not configured; cannot activate %s.%s v%s",
                namespace, extension, version,
            )
            return False

        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        payload = {
            "namespace": namespace,
            "extension": extension,
            "version": version,
            "target_platform": target_platform or "universal",
        }
        try:
            with self.session_factory() as http:
                resp = http.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            current_app.logger.warning("[activation] request failed for %s.%s v%s: %r", namespace, extension, version, e)
            return False

        if not resp.ok:
            current_app.logger.warning(
                "[activation] %s.%s v%s rejected with HTTP %s", namespace, extension, version, resp.status_code,
            )
            return False
        return True


def init_activator(app, activator: Optional[ExtensionActivator] = None):
    if activator is None:
        activator = HttpActivator(
            app.config.get("EXTENSION_ACTIVATION_URL"),
            timeout=float(app.config.get("EXTENSION_ACTIVATION_TIMEOUT", 5.0)),
            token=app.config.get("EXTENSION_ACTIVATION_TOKEN"),
        )
    app.extensions["extension_activator"] = activator
    return activator


def get_activator() -> ExtensionActivator:
    return current_app.extensions["extension_activator"]
