"""Helpers for provisioning virtual machines: volumes, images, capabilities, networking and XSLT."""

__version__ = "0.1.0"