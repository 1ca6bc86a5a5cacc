#!/usr/bin/env python3
"""
Container Build Script for the Redis Sentinel Bootstrap image
Builds the image, tags it with the Redis base version plus our build version, and pushes it
"""

import subprocess
import sys
import argparse
import logging
from pathlib import Path
from typing import List, Optional

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "gcr.io/glowforge_1"
DEFAULT_IMAGE = "smileisak-redis-fork"
DEFAULT_BASE_VERSION = "4.0.2"


def read_version(version_file: Path) -> str:
    """Read the build version, ignoring surrounding whitespace"""
    version = version_file.read_text().strip()
    if not version:
        raise ValueError(f"{version_file} is empty")
    return version


def image_tag(registry: str, image: str, base_version: str, version: str) -> str:
    return f"{registry.rstrip('/')}/{image}:{base_version}-{version}"


class ContainerBuilder:
    """Docker build-and-push wrapper"""

    def __init__(self, context_dir: Path, push_with: str = "docker", dry_run: bool = False):
        self.context_dir = context_dir
        self.push_with = push_with
        self.dry_run = dry_run

    def build_command(self, tag: str) -> List[str]:
        return ["docker", "build", f"--tag={tag}", "."]

    def push_command(self, tag: str) -> List[str]:
        if self.push_with == "gcloud":
            return ["gcloud", "docker", "--", "push", tag]
        return ["docker", "push", tag]

    def _run(self, cmd: List[str]) -> bool:
        logger.info(f"Running: {' '.join(cmd)}")
        if self.dry_run:
            return True

        try:
            subprocess.run(cmd, cwd=self.context_dir, check=True)
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"❌ {cmd[0]} exited with status {e.returncode}")
            return False
        except FileNotFoundError:
            logger.error(f"❌ {cmd[0]} not found. Please install it and make sure it is on PATH")
            return False

    def build_and_push(self, tag: str) -> bool:
        """Build the image and push it; stops at the first failing step"""
        logger.info(f"🔨 Building {tag}")
        if not self._run(self.build_command(tag)):
            return False

        logger.info(f"🚀 Pushing {tag}")
        if not self._run(self.push_command(tag)):
            return False

        logger.info(f"✅ Pushed build {tag}.")
        return True


def main(argv: Optional[List[str]] = None) -> int:
    """Main build function"""
    parser = argparse.ArgumentParser(description="Build and push the Redis bootstrap container")
    parser.add_argument("--context", default=".", help="Docker build context")
    parser.add_argument("--version-file", default="version.txt", help="File holding the build version")
    parser.add_argument("--registry", default=DEFAULT_REGISTRY, help="Container registry")
    parser.add_argument("--image", default=DEFAULT_IMAGE, help="Image name")
    parser.add_argument("--base-version", default=DEFAULT_BASE_VERSION, help="Redis base version")
    parser.add_argument("--push-with", choices=["docker", "gcloud"], default="docker",
                       help="Tool used to push the image")
    parser.add_argument("--dry-run", action="store_true", help="Only print the commands")

    args = parser.parse_args(argv)

    context_dir = Path(args.context)
    version_file = Path(args.version_file)
    if not version_file.is_absolute():
        version_file = context_dir / version_file

    try:
        version = read_version(version_file)
    except (OSError, ValueError) as e:
        logger.error(f"❌ Cannot read build version: {e}")
        return 1

    tag = image_tag(args.registry, args.image, args.base_version, version)
    builder = ContainerBuilder(context_dir, push_with=args.push_with, dry_run=args.dry_run)

    if builder.build_and_push(tag):
        return 0
    else:
        logger.error("❌ Build failed!")
        return 1

if __name__ == "__main__":
    sys.exit(main())
