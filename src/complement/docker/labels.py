"""Labels attached to complement containers, images and networks.

Derived state (access tokens, application service registrations) is carried
on the committed image's labels instead of an external store, so encoding
and decoding here must be exact inverses of each other. Three namespaces
share the flat label map:

    complement_context / complement_blueprint / complement_hs_name   identity
    access_token_<user_id>                                           tokens
    application_service_<as_id>                                      registrations
"""

from __future__ import annotations

from dataclasses import replace
from typing import Mapping

import yaml

from ..blueprints import ApplicationService, Homeserver

COMPLEMENT_LABEL = "complement_context"
BLUEPRINT_LABEL = "complement_blueprint"
HS_NAME_LABEL = "complement_hs_name"

ACCESS_TOKEN_PREFIX = "access_token_"
APPLICATION_SERVICE_PREFIX = "application_service_"

# TODO: generate unique application service tokens on each run.
AS_HS_TOKEN = "27562ff25dd2eb69361ac1eb67e3a3cd38ab9509c1483234ec8dfec0f247c73e"
AS_AS_TOKEN = "f872531e387377686989e792c723e646f7823643e747a0521e94770a721f40fc"


def label_filter(expr: str) -> dict[str, str]:
    """Docker API filter matching ``key`` or ``key=value`` labels."""
    return {"label": expr}


def identity_labels(context_str: str, blueprint_name: str, hs_name: str) -> dict[str, str]:
    return {
        COMPLEMENT_LABEL: context_str,
        BLUEPRINT_LABEL: blueprint_name,
        HS_NAME_LABEL: hs_name,
    }


def _strip_prefix(labels: Mapping[str, str], prefix: str) -> dict[str, str]:
    return {k[len(prefix):]: v for k, v in labels.items() if k.startswith(prefix)}


def labels_for_tokens(user_id_to_token: Mapping[str, str]) -> dict[str, str]:
    return {ACCESS_TOKEN_PREFIX + user_id: token for user_id, token in user_id_to_token.items()}


def tokens_from_labels(labels: Mapping[str, str]) -> dict[str, str]:
    return _strip_prefix(labels, ACCESS_TOKEN_PREFIX)


def labels_for_registrations(as_id_to_registration: Mapping[str, str]) -> dict[str, str]:
    return {
        APPLICATION_SERVICE_PREFIX + as_id: registration
        for as_id, registration in as_id_to_registration.items()
    }


def as_registrations_from_labels(labels: Mapping[str, str]) -> dict[str, str]:
    return _strip_prefix(labels, APPLICATION_SERVICE_PREFIX)


def encode_labels(
    access_tokens: Mapping[str, str],
    application_services: Mapping[str, str],
) -> dict[str, str]:
    """Flatten access tokens and AS registrations into one label map."""
    labels = labels_for_tokens(access_tokens)
    labels.update(labels_for_registrations(application_services))
    return labels


def decode_labels(labels: Mapping[str, str]) -> tuple[dict[str, str], dict[str, str]]:
    """Inverse of :func:`encode_labels`. Identity and unknown labels are ignored."""
    return tokens_from_labels(labels), as_registrations_from_labels(labels)


def generate_as_registration_yaml(app_service: ApplicationService) -> str:
    """Render an application service registration document.

    Field order is fixed: homeserver images read it verbatim from the
    ``AS_REGISTRATION_<id>`` environment variable.
    """
    registration = {
        "id": app_service.id,
        "hs_token": app_service.hs_token,
        "as_token": app_service.as_token,
        "url": app_service.url,
        "sender_localpart": app_service.sender_localpart,
        "rate_limited": app_service.rate_limited,
        "namespaces": {
            "users": [],
            "rooms": [],
            "aliases": [],
        },
    }
    return yaml.safe_dump(registration, sort_keys=False, default_flow_style=False)


def labels_for_application_services(hs: Homeserver) -> dict[str, str]:
    """Registration labels for every AS on ``hs``, plus the AS sender's access token."""
    labels: dict[str, str] = {}
    for app_service in hs.application_services:
        app_service = replace(app_service, hs_token=AS_HS_TOKEN, as_token=AS_AS_TOKEN)

        labels[APPLICATION_SERVICE_PREFIX + app_service.id] = generate_as_registration_yaml(app_service)
        labels[f"{ACCESS_TOKEN_PREFIX}@{app_service.sender_localpart}:{hs.name}"] = app_service.as_token
    return labels
