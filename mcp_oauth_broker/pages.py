"""HTML pages served by the broker."""

import html

_STYLE = """
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            max-width: 800px;
            margin: 0 auto;
            padding: 20px;
            line-height: 1.6;
        }
        h1 { color: #362d59; }
        button {
            padding: 10px 15px;
            font-size: 16px;
            background-color: #362d59;
            color: white;
            border: none;
            border-radius: 4px;
            cursor: pointer;
        }
        button:hover { background-color: #584b8c; }
        .loading, .error { display: none; margin: 20px 0; }
        .error { color: #c0392b; }
"""

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>{title}</title>
    <style>{style}</style>
</head>
<body>
    <h1>{title}</h1>
    <p>Connected server: <code>{server_url}</code></p>
    <button id="connect-button">Connect</button>
    <div id="loading" class="loading">Connecting...</div>
    <div id="error" class="error"></div>
    <div id="results"></div>
    <script>
        const results = document.getElementById('results');
        const loading = document.getElementById('loading');
        const errorBox = document.getElementById('error');

        function showTools(tools) {{
            results.innerHTML = '<p>Successfully connected!</p>';
            if (!tools || tools.length === 0) return;
            const list = document.createElement('ul');
            for (const tool of tools) {{
                const item = document.createElement('li');
                item.textContent = tool.name;
                list.appendChild(item);
            }}
            const heading = document.createElement('h3');
            heading.textContent = 'Available Tools:';
            results.appendChild(heading);
            results.appendChild(list);
        }}

        document.getElementById('connect-button').addEventListener('click', async () => {{
            results.innerHTML = '';
            errorBox.style.display = 'none';
            loading.style.display = 'block';
            try {{
                const response = await fetch('/api/connect', {{ method: 'POST' }});
                const data = await response.json();
                if (data.redirect) {{
                    results.innerHTML = '<p>Redirecting for authentication...</p>';
                    setTimeout(() => {{ window.location.href = data.redirect; }}, 500);
                    return;
                }}
                if (!response.ok) throw new Error(data.error || 'Connection failed');
                showTools(data.tools);
            }} catch (err) {{
                errorBox.textContent = err.message || 'An error occurred while connecting.';
                errorBox.style.display = 'block';
            }} finally {{
                loading.style.display = 'none';
            }}
        }});
    </script>
</body>
</html>"""

SUCCESS_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Authentication Successful</title>
    <style>{style}</style>
</head>
<body>
    <h1>Authentication Successful</h1>
    <p>You have successfully authenticated with the MCP server.</p>
    <p><a href="/">Return to the main page</a></p>
    <script>
        setTimeout(() => {{ window.location.href = '/'; }}, 3000);
    </script>
</body>
</html>"""

ERROR_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Authentication Error</title>
    <style>{style}</style>
</head>
<body>
    <h1>Authentication Error</h1>
    <p>{message}</p>
    <p><a href="/">Return to the main page</a></p>
</body>
</html>"""

MISSING_CODE_MESSAGE = "No authorization code provided."


def render_index(title: str, server_url: str) -> str:
    return INDEX_HTML.format(
        title=html.escape(title),
        server_url=html.escape(server_url),
        style=_STYLE,
    )


def render_auth_success() -> str:
    return SUCCESS_HTML.format(style=_STYLE)


def render_auth_error(message: str) -> str:
    """Render the error page; ``message`` is escaped."""
    return ERROR_HTML.format(message=html.escape(message), style=_STYLE)


def render_missing_code() -> str:
    return render_auth_error(MISSING_CODE_MESSAGE)


def render_exchange_failed(message: str) -> str:
    return render_auth_error(f"Failed to complete authentication: {message}")


def render_authorization_denied(error: str, description: str | None) -> str:
    detail = f"{error}: {description}" if description else error
    return render_auth_error(f"Authorization was denied by the server ({detail})")
