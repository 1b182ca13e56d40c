"""NVIDIA Media Setup - Main package

Provisions an Ubuntu host with the NVIDIA driver, Docker and the NVIDIA
Container Toolkit, optimized for Plex and FFmpeg hardware transcoding.
"""

__version__ = "1.0.0"
__package_name__ = "nvidia-media-setup"
