"""
Service discovery for the stock client.

Reads the Cloud Foundry style application environment: `VCAP_APPLICATION`
says where the app is publicly reachable, `VCAP_SERVICES` maps bound
service names to credentials. Outside of Cloud Foundry the app is "local":
it is reached on `PORT` and services resolve from `<NAME>_URL` variables.
"""
import json
import os
from typing import Any, Dict, List, Mapping, Optional

from stockclient.errors import ConfigurationError
from stockclient.utils.logger import get_logger

logger = get_logger("config.appenv")

DEFAULT_PORT = 3000


def _load_json(environ: Mapping[str, str], name: str) -> Optional[Any]:
    raw = environ.get(name)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} is not valid JSON: {e}") from e


def _flatten_services(vcap_services: Optional[Dict[str, List[dict]]]) -> Dict[str, dict]:
    services: Dict[str, dict] = {}
    for instances in (vcap_services or {}).values():
        for svc in instances or []:
            name = svc.get("name")
            if name:
                services[name] = svc
    return services


def _env_var_name(service: str) -> str:
    return service.upper().replace("-", "_") + "_URL"


class AppEnv:
    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        *,
        url: Optional[str] = None,
        port: Optional[int] = None,
        services: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            environ: Environment to read, defaults to os.environ
            url: Public URL of this app. Given explicitly, the app is not local
            port: Local bind port, overrides `PORT`
            services: Explicit service name -> URL map, checked before the environment
        """
        env = os.environ if environ is None else environ
        self._environ = env
        self._explicit_services = dict(services or {})

        vcap_app = _load_json(env, "VCAP_APPLICATION")
        self._services = _flatten_services(_load_json(env, "VCAP_SERVICES"))

        if url is None and vcap_app:
            uris = vcap_app.get("application_uris") or vcap_app.get("uris") or []
            if uris:
                url = f"https://{uris[0]}"

        self.url: Optional[str] = url
        self.is_local: bool = url is None

        if port is None:
            try:
                port = int(env.get("PORT", DEFAULT_PORT))
            except ValueError as e:
                raise ConfigurationError(f"PORT is not an integer: {env.get('PORT')!r}") from e
        self.port: int = port

    def get_service(self, name: str) -> Optional[dict]:
        return self._services.get(name)

    def get_service_url(self, name: str) -> str:
        """Resolves a logical service name to its base URL."""
        if name in self._explicit_services:
            return self._explicit_services[name]

        svc = self.get_service(name)
        if svc is not None:
            creds = svc.get("credentials") or {}
            svc_url = creds.get("url") or creds.get("uri")
            if svc_url:
                return svc_url
            logger.warning("Service %s is bound but has no url/uri credential", name)

        env_url = self._environ.get(_env_var_name(name))
        if env_url:
            return env_url

        raise ConfigurationError(
            f"No URL for service {name!r}: bind it in VCAP_SERVICES or set {_env_var_name(name)}"
        )
