"""Link generation and persistent-parameter capabilities.

``LinkBuilder`` abstracts the web framework's URL routing. Components
form a parent chain; each one may declare persistent parameters whose
defaults are merged into generated links so deep-link state survives
the OAuth redirect round trip.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from ..exceptions import ConfigurationError


if TYPE_CHECKING:
    from collections.abc import Sequence

    from starlette.requests import Request


#: Joins component names into a lookup path and prefixes persistent params.
NAME_SEPARATOR = "-"


class PersistentComponent(Protocol):
    """A node of the UI component tree.

    The root component (``parent is None``) contributes its parameters
    without a prefix.
    """

    name: str
    parent: PersistentComponent | None
    persistent_params: Mapping[str, Any]


@dataclass
class Component:
    """Plain PersistentComponent implementation.

    Attributes
    ----------
    name : str
        Component name, unique among its siblings.
    parent : Component or None
        Enclosing component; None for the root (page/endpoint).
    persistent_params : dict[str, Any]
        Parameter name to default value.
    """

    name: str
    parent: Component | None = None
    persistent_params: dict[str, Any] = field(default_factory=dict)


def lookup_path(component: PersistentComponent) -> str:
    """Return the component's path below the root, e.g. ``"grid-pager"``."""
    names: list[str] = []
    node: PersistentComponent | None = component
    while node is not None and node.parent is not None:
        names.append(node.name)
        node = node.parent
    return NAME_SEPARATOR.join(reversed(names))


def collect_persistent_params(component: PersistentComponent | None) -> dict[str, Any]:
    """Walk from *component* to the root collecting persistent defaults.

    Parameters
    ----------
    component : PersistentComponent or None
        The component to start from.

    Returns
    -------
    dict[str, Any]
        ``{"<path>-<param>": default}`` for nested components and
        ``{"<param>": default}`` for the root.
    """
    reset: dict[str, Any] = {}
    node = component
    while node is not None:
        prefix = lookup_path(node)
        for name, default in node.persistent_params.items():
            reset[f"{prefix}{NAME_SEPARATOR}{name}" if prefix else name] = default
        node = node.parent
    return reset


class LinkBuilder(ABC):
    """Abstract URL builder supplied by the hosting web framework."""

    @abstractmethod
    def resolve(self, endpoint: str, args: Mapping[str | int, Any]) -> str:
        """Build an absolute URL for *endpoint*.

        Parameters
        ----------
        endpoint : str
            Symbolic endpoint (route) name.
        args : Mapping
            Integer keys are positional arguments in order; string
            keys are named arguments.

        Returns
        -------
        str
            The absolute URL.
        """

    def current_component(self) -> PersistentComponent | None:
        """Return the component handling the current request, if any."""
        return None

    def current_persistent_params(
        self, component: PersistentComponent | None = None
    ) -> dict[str, Any]:
        """Collect persistent parameter defaults of the component ancestry."""
        return collect_persistent_params(component or self.current_component())


def _route_param_names(routes: Sequence[Any], name: str) -> list[str] | None:
    """Find the path parameter names of the route called *name*."""
    from starlette.routing import Mount

    for route in routes:
        if isinstance(route, Mount):
            if route.name is None:
                sub_name = name
            elif name.startswith(f"{route.name}:"):
                sub_name = name[len(route.name) + 1 :]
            else:
                continue
            found = _route_param_names(route.routes, sub_name)
            if found is not None:
                # "path" is the mount's own catch-all
                return [*(p for p in route.param_convertors if p != "path"), *found]
        elif getattr(route, "name", None) == name:
            return list(getattr(route, "param_convertors", {}))
    return None


class StarletteLinkBuilder(LinkBuilder):
    """LinkBuilder backed by Starlette/FastAPI ``request.url_for``.

    Positional arguments fill the route's path parameters in order,
    named arguments fill the remaining path parameters, and everything
    else becomes the query string. ``None`` values are omitted.

    Parameters
    ----------
    request : Request
        The current request.
    component : PersistentComponent, optional
        Component handling the request (e.g. set by the view).
    """

    def __init__(self, request: Request, component: PersistentComponent | None = None) -> None:
        self.request = request
        self.component = component

    def current_component(self) -> PersistentComponent | None:
        """Return the explicit component or ``request.state.component``."""
        if self.component is not None:
            return self.component
        return getattr(self.request.state, "component", None)

    def resolve(self, endpoint: str, args: Mapping[str | int, Any]) -> str:
        """Build an absolute URL with ``request.url_for``."""
        param_names = _route_param_names(self.request.app.router.routes, endpoint) or []

        positional = [args[k] for k in sorted(k for k in args if isinstance(k, int))]
        if len(positional) > len(param_names):
            msg = (
                f"Endpoint '{endpoint}' takes {len(param_names)} path parameter(s), "
                f"{len(positional)} positional argument(s) given"
            )
            raise ConfigurationError(msg, setting="return_uri")

        path_params: dict[str, Any] = dict(zip(param_names, positional))
        query: dict[str, Any] = {}
        for key, value in args.items():
            if isinstance(key, int):
                continue
            if key in param_names and key not in path_params:
                path_params[key] = value
            elif value is not None and key not in path_params:
                query[key] = value

        url = self.request.url_for(endpoint, **path_params)
        if query:
            url = url.include_query_params(**query)
        return str(url)
