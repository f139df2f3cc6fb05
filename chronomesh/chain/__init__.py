"""
Write path: create, update and delete actions.
"""

from chronomesh.chain.actions import Clock, CreateAction, UpdateAction, DeleteAction

__all__ = [
    "Clock",
    "CreateAction",
    "UpdateAction",
    "DeleteAction",
]
