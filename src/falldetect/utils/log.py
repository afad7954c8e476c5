import logging, json, sys

def get_logger(name, level=logging.INFO):
    """Logger em stdout; dicts são serializados como JSON (uma linha por evento)."""
    l = logging.getLogger(name); l.setLevel(level)
    if not l.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter('%(asctime)s [%(levelname)s] %(name)s %(message)s'))
        l.addHandler(h)
    if getattr(l, "_json_info", False):
        return l
    old_info = l.info
    def info(obj, *args, **kwargs):
        if isinstance(obj, dict):
            obj = json.dumps(obj, ensure_ascii=False, default=str)
        old_info(obj, *args, **kwargs)
    l.info = info
    l._json_info = True
    return l
