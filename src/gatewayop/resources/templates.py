"""Jinja2 manifest templates shipped with the package."""

import jinja2
import yaml

_env = jinja2.Environment(
    loader=jinja2.PackageLoader("gatewayop", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=jinja2.StrictUndefined,
)


def render_manifest(template_name, **context):
    """Render a template and parse the result as a single YAML document."""
    template = _env.get_template(template_name)
    return yaml.safe_load(template.render(**context))
