"""
Authorization URL construction.

Every provider gets the same base query (``client_id``, ``redirect_uri``,
``state``, ``response_type=code``) plus the extra parameters listed in
``_EXTRA_PARAMS``.  A value may be a literal string or a callable taking the
``OAuthConfig``; a callable returning ``None`` omits the parameter.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import quote, urlencode

from oauth.config import OAuthConfig
from utils.schemas import ToolSource

ParamValue = Union[str, Callable[[OAuthConfig], Optional[str]]]


def _scopes(sep: str) -> Callable[[OAuthConfig], Optional[str]]:
    return lambda cfg: sep.join(cfg.scopes) if cfg.scopes else None


def _user_scopes(cfg: OAuthConfig) -> Optional[str]:
    return ",".join(cfg.user_scopes) if cfg.user_scopes else None


_EXTRA_PARAMS: Dict[ToolSource, List[Tuple[str, ParamValue]]] = {
    ToolSource.GOOGLE: [
        ("scope", _scopes(" ")),
        ("access_type", "offline"),
        ("prompt", "consent"),
        ("include_granted_scopes", "true"),
    ],
    ToolSource.SLACK: [
        ("scope", _scopes(",")),
        ("user_scope", _user_scopes),
    ],
    ToolSource.MICROSOFT: [
        ("scope", _scopes(" ")),
        ("response_mode", "query"),
        ("prompt", "consent"),
    ],
    # Dropbox scopes live in the app console.
    ToolSource.DROPBOX: [
        ("token_access_type", "offline"),
        ("force_reapprove", "true"),
    ],
    ToolSource.FIGMA: [
        ("scope", _scopes(",")),
    ],
    ToolSource.LINEAR: [
        ("scope", _scopes(",")),
        ("prompt", "consent"),
        ("actor", "application"),
    ],
    ToolSource.JIRA: [
        ("scope", _scopes(" ")),
        ("audience", "api.atlassian.com"),
        ("prompt", "consent"),
    ],
    ToolSource.NOTION: [
        ("owner", "user"),
    ],
}


def authorization_params(source: ToolSource, cfg: OAuthConfig, state: str) -> Dict[str, str]:
    params: Dict[str, str] = {
        "client_id": cfg.client_id,
        "redirect_uri": cfg.redirect_uri,
        "state": state,
        "response_type": "code",
    }
    for key, value in _EXTRA_PARAMS.get(source, [("scope", _scopes(" "))]):
        resolved = value(cfg) if callable(value) else value
        if resolved is not None:
            params[key] = resolved
    return params


def build_authorization_url(source: ToolSource, cfg: OAuthConfig, state: str) -> str:
    """Return the provider URL the browser should be redirected to."""
    # quote (not quote_plus) so spaces in scope become %20.
    query = urlencode(authorization_params(source, cfg, state), quote_via=quote)
    return f"{cfg.authorization_url}?{query}"
