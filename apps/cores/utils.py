from django.core.exceptions import ValidationError as DjangoValidationError

from apps.cores.exceptions import NotFound


def get_or_not_found(klass, message="Not found.", **lookup):
    """
    Like django.shortcuts.get_object_or_404, but raises the engagement
    NotFound. A malformed id counts as missing.
    """
    queryset = klass._default_manager.all() if hasattr(klass, "_default_manager") else klass
    try:
        return queryset.get(**lookup)
    except (queryset.model.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFound(message)
