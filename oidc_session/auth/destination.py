"""Return destination configuration and resolution.

The return destination is both the OAuth ``redirect_uri`` and the
page the user lands on after authenticating. It is configured once,
validated at startup, and resolved per request.
"""

from __future__ import annotations

import re

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union
from urllib.parse import urlsplit, urlunsplit

from ..exceptions import ConfigurationError


if TYPE_CHECKING:
    from .links import LinkBuilder, PersistentComponent


_ALPHA = "a-z\x80-\xff"
_DOMAIN = f"[0-9{_ALPHA}](?:[-0-9{_ALPHA}]{{0,61}}[0-9{_ALPHA}])?"
_TOP_DOMAIN = f"[{_ALPHA}](?:[-0-9{_ALPHA}]{{0,17}}[{_ALPHA}])?"
_URL_RE = re.compile(
    rf"^([a-z][a-z0-9+.-]*://)?(?:(?:{_DOMAIN}\.)*{_TOP_DOMAIN}"
    r"|\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}|\[[0-9a-f:]{3,39}\])"
    r"(:\d{1,5})?(/\S*)?\Z",
    re.IGNORECASE,
)
# alphanumeric segments separated by ":" (route namespaces)
_ENDPOINT_RE = re.compile(r"^(?://)?:?[a-z0-9_]+(?::[a-z0-9_]+)*$", re.IGNORECASE)


def is_url(value: str) -> bool:
    """Check whether *value* looks like a URL (scheme optional)."""
    return bool(_URL_RE.match(value))


def is_endpoint_name(value: str) -> bool:
    """Check whether *value* is a valid symbolic endpoint name."""
    return bool(_ENDPOINT_RE.match(value))


def _normalize_endpoint(endpoint: str) -> str:
    if not isinstance(endpoint, str) or not is_endpoint_name(endpoint):
        msg = (
            "Please fix your configuration, expression "
            f"'{endpoint}' does not look like a valid endpoint name."
        )
        raise ConfigurationError(msg, setting="return_uri")
    return endpoint.lstrip("/:")


@dataclass(frozen=True)
class AbsoluteDestination:
    """A fixed absolute URL with scheme and path."""

    url: str

    def __post_init__(self) -> None:
        parts = urlsplit(self.url)
        if not parts.scheme or not parts.netloc:
            fixed = urlunsplit(urlsplit(f"https://{self.url.split('://')[-1]}"))
            msg = (
                "Please fix your configuration, scheme for return_uri is missing. "
                f"Hint: `return_uri = \"{fixed}\"`"
            )
            raise ConfigurationError(msg, setting="return_uri")
        if not parts.path:
            fixed = urlunsplit(parts._replace(path="/oauth-callback"))
            msg = (
                f"Are you sure you want to redirect from the identity provider to "
                f"'{self.url}'? Hint: you might want to add some path "
                f"`return_uri = \"{fixed}\"`"
            )
            raise ConfigurationError(msg, setting="return_uri")


@dataclass(frozen=True)
class EndpointDestination:
    """A symbolic endpoint with positional arguments."""

    endpoint: str
    args: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "endpoint", _normalize_endpoint(self.endpoint))
        object.__setattr__(self, "args", tuple(self.args))


@dataclass(frozen=True)
class NamedEndpointDestination:
    """A symbolic endpoint with named arguments."""

    endpoint: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "endpoint", _normalize_endpoint(self.endpoint))
        if not isinstance(self.params, Mapping):
            msg = f"Endpoint params must be a mapping, got {type(self.params).__name__}"
            raise ConfigurationError(msg, setting="return_uri")
        object.__setattr__(self, "params", dict(self.params))


ReturnDestination = Union[AbsoluteDestination, EndpointDestination, NamedEndpointDestination]


def parse_return_destination(value: Any) -> ReturnDestination:
    """Parse a configured return destination.

    Parameters
    ----------
    value : str or Mapping or ReturnDestination
        ``"https://app.example.com/oauth"``, ``"auth_callback"``,
        ``{"endpoint": "dashboard", "args": [1]}`` or
        ``{"endpoint": "dashboard", "params": {"tab": "users"}}``.

    Returns
    -------
    ReturnDestination
        The validated destination.

    Raises
    ------
    ConfigurationError
        If the value is not a usable destination.
    """
    if isinstance(value, (AbsoluteDestination, EndpointDestination, NamedEndpointDestination)):
        return value

    if isinstance(value, str):
        if is_endpoint_name(value):
            return EndpointDestination(value)
        if is_url(value):
            return AbsoluteDestination(value)
        msg = (
            "Please fix your configuration, expression "
            f"'{value}' does not look like a valid URL or endpoint name."
        )
        raise ConfigurationError(msg, setting="return_uri")

    if isinstance(value, Mapping):
        unknown = set(value) - {"endpoint", "args", "params"}
        if unknown:
            msg = f"Unknown return_uri keys: {', '.join(sorted(unknown))}"
            raise ConfigurationError(msg, setting="return_uri")
        if "args" in value and "params" in value:
            msg = "return_uri takes either 'args' or 'params', not both"
            raise ConfigurationError(msg, setting="return_uri")
        endpoint = value.get("endpoint")
        if "params" in value:
            return NamedEndpointDestination(endpoint, value["params"])
        args = value.get("args", ())
        if isinstance(args, (str, bytes)) or not isinstance(args, (list, tuple)):
            msg = f"return_uri args must be a list, got {type(args).__name__}"
            raise ConfigurationError(msg, setting="return_uri")
        return EndpointDestination(endpoint, tuple(args))

    msg = f"Unsupported return_uri value of type {type(value).__name__}"
    raise ConfigurationError(msg, setting="return_uri")


class ReturnDestinationResolver:
    """Computes the callback/landing URL for the current request.

    Parameters
    ----------
    destination : ReturnDestination
        The configured destination.
    link_builder : LinkBuilder, optional
        Required for the endpoint variants.
    """

    def __init__(
        self,
        destination: ReturnDestination,
        link_builder: LinkBuilder | None = None,
    ) -> None:
        if not isinstance(destination, AbsoluteDestination) and link_builder is None:
            msg = f"Endpoint destination '{destination.endpoint}' requires a link builder"
            raise ConfigurationError(msg, setting="return_uri")
        self.destination = destination
        self.link_builder = link_builder

    def resolve(self, component: PersistentComponent | None = None) -> str:
        """Return the absolute return URL.

        Parameters
        ----------
        component : PersistentComponent, optional
            Start of the persistent-parameter walk; defaults to the
            link builder's current component.
        """
        destination = self.destination
        if isinstance(destination, AbsoluteDestination):
            return destination.url

        if self.link_builder is None:
            msg = f"Endpoint destination '{destination.endpoint}' requires a link builder"
            raise ConfigurationError(msg, setting="return_uri")
        args: dict[str | int, Any] = dict(self.link_builder.current_persistent_params(component))
        if isinstance(destination, NamedEndpointDestination):
            args.update(destination.params)
        else:
            args.update(enumerate(destination.args))
        return self.link_builder.resolve(destination.endpoint, args)
