# community_app/forms/__init__.py
"""
WTForms package
"""

from .membership import AreaSelectionForm, JoinForm, PriorityAreasForm, RequestLinkForm

__all__ = [
    "AreaSelectionForm",
    "JoinForm",
    "PriorityAreasForm",
    "RequestLinkForm",
]
