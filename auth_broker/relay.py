"""
Token relay: the terminal response that delivers a TokenResult to the relying application.
Browser flows get a page that postMessages the result to window.opener and closes itself;
polling clients get JSON. The client secret is never passed in here.
"""
import html
import json

from fastapi.responses import HTMLResponse, JSONResponse

from auth_broker.config import FlowMode
from auth_broker.flow import FlowState, TokenResult

_NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache", "Referrer-Policy": "no-referrer"}


def relay_message(result: TokenResult, flow_mode: FlowMode) -> dict | str:
    """The value posted to the opener, in the convention the relying application expects."""
    if flow_mode == FlowMode.STRING:
        if result.ok:
            return f"authorization:{result.provider}:success:{result.access_token}"
        return f"authorization:{result.provider}:error:{result.message or result.error}"
    if result.ok:
        return {"token": result.access_token, "provider": result.provider}
    return {"error": result.error, "message": result.message, "provider": result.provider}


def _script_json(value) -> str:
    """JSON safe to inline inside <script>: no closing tags survive."""
    return (
        json.dumps(value)
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
    )


def _page_status(result: TokenResult) -> int:
    if result.outcome in (FlowState.STATE_INVALID, FlowState.REQUEST_INVALID):
        return 400
    if result.outcome == FlowState.CONFIG_ERROR:
        return 500
    # Provider outcomes (granted, denied, unreachable) are delivered to the opener
    return 200


def render_relay_page(result: TokenResult, target_origin: str, flow_mode: FlowMode) -> HTMLResponse:
    """
    Page that posts the result to window.opener targeted at target_origin, then closes.
    A missing or closed opener is tolerated; the page still closes.
    """
    if result.ok:
        title = "Authorization complete"
        text = "Authorization complete. You can close this window."
    else:
        title = "Authorization failed"
        text = f"Authorization failed: {html.escape(result.message or result.error or 'unknown error')}"
    body = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
  <p>{text}</p>
  <script>
    (function () {{
      var message = {_script_json(relay_message(result, flow_mode))};
      var targetOrigin = {_script_json(target_origin)};
      try {{
        if (window.opener && !window.opener.closed) {{
          window.opener.postMessage(message, targetOrigin);
        }}
      }} catch (e) {{
        // opener already gone; nothing to deliver to
      }}
      window.close();
    }})();
  </script>
</body>
</html>"""
    return HTMLResponse(body, status_code=_page_status(result), headers=_NO_STORE_HEADERS)


def relay_json(result: TokenResult) -> JSONResponse:
    """JSON variant for non-browser callers: {token, provider} or {error, error_description, provider}."""
    if result.ok:
        return JSONResponse(
            {"token": result.access_token, "provider": result.provider},
            headers=_NO_STORE_HEADERS,
        )
    return JSONResponse(
        {"error": result.error, "error_description": result.message, "provider": result.provider},
        status_code=result.status_code if result.status_code >= 400 else 400,
        headers=_NO_STORE_HEADERS,
    )
