"""
Flatten dicts
=============

Turn nested dictionaries into flat ``key.subkey`` versions.

"""


def flatten(dictionary, sep="."):
    """Turn all nested dict keys into a {key}{sep}{subkey} format"""
    flat = {}
    for key, value in dictionary.items():
        if isinstance(value, dict) and value:
            for sub_key, sub_value in flatten(value, sep=sep).items():
                flat[f"{key}{sep}{sub_key}"] = sub_value
        else:
            flat[key] = value

    return flat
