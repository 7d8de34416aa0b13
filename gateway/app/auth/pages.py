"""
HTML pages served by the gateway itself.

Login failures and an unavailable identity provider are reported to the
browser as a small standalone error page rather than JSON, since these
responses land in a top-level browser navigation.
"""

from html import escape
from typing import Optional

from fastapi.responses import HTMLResponse


def render_error_page(
    title: str,
    message: str,
    retry_url: Optional[str] = "/",
    status_code: int = 400,
) -> HTMLResponse:
    """
    Render error page for authentication failures.

    Args:
        title: Error title
        message: Error message (no PII)
        retry_url: Target of the retry button, or None to hide it
        status_code: HTTP status code

    Returns:
        HTMLResponse with error information
    """
    retry_button = f"""
        <a href="{escape(retry_url)}" class="button">
            Try Again
        </a>
    """ if retry_url else ""

    html_content = f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>{escape(title)}</title>
        <style>
            * {{ margin: 0; padding: 0; box-sizing: border-box; }}
            body {{
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
                background: #f3f4f6;
                min-height: 100vh;
                display: flex;
                align-items: center;
                justify-content: center;
                padding: 20px;
            }}
            .container {{
                background: white;
                border-radius: 12px;
                padding: 40px;
                max-width: 500px;
                width: 100%;
                box-shadow: 0 10px 40px rgba(0,0,0,0.1);
                text-align: center;
            }}
            .error-icon {{
                width: 80px;
                height: 80px;
                background: #ef4444;
                border-radius: 50%;
                display: flex;
                align-items: center;
                justify-content: center;
                margin: 0 auto 24px;
                color: white;
                font-size: 48px;
                font-weight: bold;
            }}
            h1 {{
                color: #1f2937;
                font-size: 24px;
                margin-bottom: 16px;
            }}
            .message {{
                color: #6b7280;
                font-size: 16px;
                line-height: 1.6;
                margin-bottom: 32px;
            }}
            .button {{
                display: inline-block;
                background: #4f46e5;
                color: white;
                padding: 14px 32px;
                border-radius: 8px;
                text-decoration: none;
                font-weight: 600;
                font-size: 16px;
            }}
        </style>
    </head>
    <body>
        <div class="container">
            <div class="error-icon">!</div>

            <h1>{escape(title)}</h1>
            <p class="message">{escape(message)}</p>

            {retry_button}
        </div>
    </body>
    </html>
    """

    return HTMLResponse(content=html_content, status_code=status_code)
