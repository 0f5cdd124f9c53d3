def mask_query(url: str) -> str:
    """Hide query parameter values so signed URLs and tokens stay out of logs."""
    base, separator, query = url.partition("?")
    if not separator or not query:
        return url
    query, hash_mark, fragment = query.partition("#")
    masked = []
    for pair in query.split("&"):
        name, equals, _value = pair.partition("=")
        masked.append(f"{name}=****" if equals else name)
    return f"{base}?{'&'.join(masked)}{hash_mark}{fragment}"
