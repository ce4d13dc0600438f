"""
HTML pages shown in the browser tab / popup after the OAuth redirect.
"""

from __future__ import annotations

import json
from html import escape

from config.settings import config
from oauth.callback import CallbackOutcome


def render_callback_page(outcome: CallbackOutcome) -> str:
    """
    Small HTML page shown after the provider redirect.
    Sends a postMessage to the opener and auto-closes; a button closes it
    manually.  ``outcome.message`` is already a friendly message.
    """
    provider = outcome.display_name or outcome.provider_key or "OAuth"
    if outcome.success:
        title = "Authentication Successful"
        color = "#4CAF50"
        hint = "You can close this window and return to the application."
        close_after_ms = 3000
    else:
        title = "Authentication Failed"
        color = "#d32f2f"
        hint = "Please try again or contact support if the issue persists."
        close_after_ms = 5000

    # json.dumps output is embedded in <script>; "</" must not end the tag.
    notification = json.dumps(
        {
            "type": "oauth-callback",
            "provider": outcome.provider_key,
            "success": outcome.success,
            "credentialId": outcome.credential_id,
            "message": outcome.message,
        }
    ).replace("</", "<\\/")

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{escape(config.app_name)} — {escape(provider)} {title}</title>
    <style>
        body {{
            font-family: Arial, sans-serif;
            text-align: center;
            padding-top: 50px;
        }}
        .container {{
            max-width: 600px; margin: 0 auto; padding: 20px;
            border: 1px solid #e0e0e0; border-radius: 5px;
        }}
        h1 {{ color: {color}; }}
        .button {{
            display: inline-block; background-color: #4CAF50; color: white;
            padding: 10px 20px; border: none; border-radius: 5px;
            margin-top: 20px; cursor: pointer;
        }}
    </style>
</head>
<body>
    <div class="container">
        <h1>{title}</h1>
        <p>{escape(outcome.message)}</p>
        <p>{hint}</p>
        <button onclick="window.close();" class="button">Close Window</button>
    </div>
    <script>
        if (window.opener) {{
            window.opener.postMessage({notification}, '*');
        }}
        setTimeout(() => window.close(), {close_after_ms});
    </script>
</body>
</html>"""
