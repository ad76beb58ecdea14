"""Container image resolution and version validation."""

import logging
import re

from gatewayop.errors import InvalidSpec
from gatewayop.resources.podtemplate import get_container

logger = logging.getLogger(__name__)

# Oldest supported release per container.
MINIMUM_VERSIONS = {
    "controller": (3, 1),
    "proxy": (3, 4),
}

VERSION_PATTERN = re.compile(r"^v?(\d+)\.(\d+)(?:\.(\d+))?")


def split_image(image):
    """Split an image reference into (repository, tag). Tag is None when absent."""
    image = image.split("@", 1)[0]
    slash = image.rfind("/")
    colon = image.rfind(":")
    if colon > slash:
        return image[:colon], image[colon + 1 :]
    return image, None


def image_version(image):
    _, tag = split_image(image)
    if not tag:
        return None
    match = VERSION_PATTERN.match(tag)
    if not match:
        return None
    return tuple(int(part) for part in match.groups() if part is not None)


def resolve_image(pod_template, container_name, default_image, validate=False):
    """Pick the container image: the user's if set, else the default.

    Raises:
        InvalidSpec: no image can be resolved, or validation is on and the
            image tag is not a supported version.
    """
    container = get_container(pod_template, container_name)
    image = (container or {}).get("image") or default_image
    if not image:
        raise InvalidSpec(f"no image resolvable for container {container_name}")

    if validate:
        version = image_version(image)
        minimum = MINIMUM_VERSIONS.get(container_name)
        if version is None:
            raise InvalidSpec(f"unsupported {container_name} image {image}: no version tag")
        if minimum and version[: len(minimum)] < minimum:
            raise InvalidSpec(
                f"unsupported {container_name} image {image}: "
                f"minimum version is {'.'.join(map(str, minimum))}"
            )

    logger.debug(f"Resolved {container_name} image: {image}")
    return image
