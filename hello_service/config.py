"""
Environment-driven settings, resolved once at startup.
"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    server_port: str = ""
    downstream_endpoint: str = ""
    downstream_name: str = "python"
    service_name: str = "hello-service"
    span_exporter_protocol: str = ""
    span_exporter_host: str = ""
    span_exporter_port: str = ""
    span_exporter_endpoint: str = ""
    metrics_export_interval: str = ""

    @property
    def span_exporter_url(self):
        return (
            f"{self.span_exporter_protocol}://{self.span_exporter_host}"
            f":{self.span_exporter_port}{self.span_exporter_endpoint}"
        )

    def listen_address(self):
        """Split SERVER_PORT into (host, port).

        Accepts ":8080", "host:8080", "[::1]:8080" and bare "8080". An empty
        value binds port 80 on all interfaces.
        """
        if not self.server_port:
            return "0.0.0.0", 80
        host, sep, port = self.server_port.rpartition(":")
        if not sep:
            host, port = "", self.server_port
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        if not port.isdigit():
            raise ValueError(f"invalid SERVER_PORT {self.server_port!r}")
        return host or "0.0.0.0", int(port)


def load_settings(environ=None, env_file=".env"):
    """Read settings from the process environment.

    The env file is optional and never overrides variables already set.
    Missing values come through as empty strings; nothing is validated here.
    """
    if environ is None:
        load_dotenv(env_file)
        environ = os.environ

    return Settings(
        server_port=environ.get("SERVER_PORT", ""),
        # Both spellings name the same downstream endpoint.
        downstream_endpoint=environ.get("PYTHON_ENDPOINT")
        or environ.get("PYTHON_REMOTE_ENDPOINT", ""),
        downstream_name=environ.get("DOWNSTREAM_NAME", "python"),
        service_name=environ.get("OTEL_SERVICE_NAME", "hello-service"),
        span_exporter_protocol=environ.get("SPAN_EXPORTER_PROTOCOL", ""),
        span_exporter_host=environ.get("SPAN_EXPORTER_HOST", ""),
        span_exporter_port=environ.get("SPAN_EXPORTER_PORT", ""),
        span_exporter_endpoint=environ.get("SPAN_EXPORTER_ENDPOINT", ""),
        metrics_export_interval=environ.get("METRICS_EXPORT_INTERVAL", ""),
    )
