# crewpay_api/common/paging.py
from flask import request

from crewpay_api.common.errors import ValidationError
from crewpay_api.common.timeutils import parse_date, period_window

DEFAULT_PAGE = 1
DEFAULT_SIZE = 50
MAX_SIZE = 500

def page_limit():
    """page/size (or limit alias) from the query string, clamped."""
    try:
        page = max(int(request.args.get("page", DEFAULT_PAGE)), 1)
    except ValueError:
        page = DEFAULT_PAGE
    raw = request.args.get("size", request.args.get("limit", DEFAULT_SIZE))
    try:
        size = max(1, min(int(raw), MAX_SIZE))
    except ValueError:
        size = DEFAULT_SIZE
    return page, size

def int_arg(*names: str):
    """
    Return first present arg among names (camelCase/snake_case),
    cast to int. If present but invalid -> ValidationError.
    """
    for n in names:
        if n in request.args:
            v = request.args.get(n)
            if v in (None, "", "null"): return None
            try:
                return int(v)
            except ValueError:
                raise ValidationError(f"{n} must be integer", field=n)
    return None

def bool_arg(*names: str):
    for n in names:
        if n in request.args:
            v = (request.args.get(n) or "").lower()
            if v in ("true", "1", "yes"):  return True
            if v in ("false", "0", "no"):  return False
            raise ValidationError(f"{n} must be true/false", field=n)
    return None

def text_q():
    q = request.args.get("q", "")
    return q.strip() or None

def date_window():
    """
    ?from=YYYY-MM-DD&to=YYYY-MM-DD, else ?mode=week|month|all&offset=N.
    Neither given -> (None, None), i.e. no date filter.
    """
    dfrom, dto = request.args.get("from"), request.args.get("to")
    if dfrom or dto:
        start, end = parse_date(dfrom), parse_date(dto)
        if dfrom and not start:
            raise ValidationError("from must be YYYY-MM-DD", field="from")
        if dto and not end:
            raise ValidationError("to must be YYYY-MM-DD", field="to")
        return start, end
    mode = request.args.get("mode")
    if not mode:
        return None, None
    try:
        return period_window(mode, int_arg("offset") or 0)
    except ValueError as e:
        raise ValidationError(str(e), field="mode")
