"""Enumerations for the Contact data model."""

from enum import Enum


class LinkPrecedence(str, Enum):
    """Role of a contact inside its identity graph."""

    PRIMARY = "primary"  # Oldest contact, linked_id is NULL
    SECONDARY = "secondary"  # Points directly at the graph's primary
