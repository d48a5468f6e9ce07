from services.errors import ValidationError


def text_field(data, key, default=""):
    """Stripped string from a JSON body. Numbers, lists and objects are a 400."""
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value.strip() or default
