"""Load balancer static pod rendering.

Workers reach the API server through a VIP. The lvscare static pod on each
worker forwards that VIP to the current masters, so the manifest has to be
regenerated whenever the master set changes.
"""

import logging
import os
from typing import List

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)

from .models import API_SERVER_PORT

logger = logging.getLogger("kubeadm.lvscare")

TEMPLATE_NAME = 'lvscare.yaml.j2'


class ManifestError(Exception):
    """Raised when the static pod manifest cannot be rendered."""


def get_template_path() -> str:
    """Get the absolute path to the templates directory."""
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')


def render_static_pod(vip: str, masters: List[str], image: str, port: int = API_SERVER_PORT) -> str:
    """Render the lvscare static pod manifest.

    Args:
        vip: Virtual IP workers use to reach the API server
        masters: Backend masters, in order
        image: Fully qualified lvscare image
        port: API server port on the VIP and on every master

    Returns:
        str: Rendered YAML manifest

    Raises:
        ManifestError: If the template is missing or does not render
    """
    if not vip:
        raise ManifestError("vip must be a non-empty string")

    env = Environment(
        loader=FileSystemLoader(get_template_path()),
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=StrictUndefined
    )
    try:
        template = env.get_template(TEMPLATE_NAME)
        return template.render(vip=vip, masters=list(masters), image=image, port=port)
    except TemplateNotFound as e:
        raise ManifestError(f"Static pod template not found: {e}") from e
    except TemplateSyntaxError as e:
        raise ManifestError(f"Template syntax error: {e}") from e
    except UndefinedError as e:
        raise ManifestError(f"Missing required template variable: {e}") from e
