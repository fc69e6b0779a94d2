"""Flask login app used as the target for the browser suites in e2e/.

Serves the two login flavors the harness is exercised against:
- form: classic HTML form POST, redirect to /dashboard on success
- xhr: JSON POST from page script, redirect performed by Login.redirect

Run with:
    python demo_app/app.py --mode xhr --port 8083
"""

import argparse

from flask import Flask, jsonify, make_response, redirect, request

SESSION_COOKIE = "cypress-session-cookie"
VALID_USERNAME = "cypress"
VALID_PASSWORD = "password123"

LOGIN_PAGE = """<!doctype html>
<html>
<head><title>Login</title></head>
<body>
  <h1>Login</h1>
  <form method="POST" action="/login" id="login">
    <input name="username" type="text">
    <input name="password" type="password">
    <button type="submit">Login</button>
  </form>
  <p class="error" style="{error_style}">{error}</p>
  {script}
</body>
</html>
"""

XHR_SCRIPT = """<script>
  window.Login = {
    redirect: function (url) { window.location.href = url; }
  };
  document.getElementById("login").addEventListener("submit", function (event) {
    event.preventDefault();
    var form = event.target;
    var error = document.querySelector("p.error");
    error.style.display = "none";
    var xhr = new XMLHttpRequest();
    xhr.open("POST", "/login");
    xhr.setRequestHeader("Content-Type", "application/json");
    xhr.onload = function () {
      if (xhr.status >= 200 && xhr.status < 300) {
        var data = JSON.parse(xhr.responseText || "{}");
        window.Login.redirect(data.redirect);
        return;
      }
      error.textContent = xhr.status === 401
        ? "Username and password incorrect"
        : "An error occurred: " + xhr.status + " " + xhr.statusText;
      error.style.display = "block";
    };
    xhr.send(JSON.stringify({
      username: form.username.value,
      password: form.password.value
    }));
  });
</script>"""

PROTECTED_PAGES = ("dashboard", "users", "admin")


def _valid(credentials) -> bool:
    return (
        credentials.get("username") == VALID_USERNAME
        and credentials.get("password") == VALID_PASSWORD
    )


def create_app(mode: str = "form") -> Flask:
    """Create the login app in "form" or "xhr" mode."""
    if mode not in ("form", "xhr"):
        raise ValueError(f"Unknown mode: {mode}")

    app = Flask(__name__)
    script = XHR_SCRIPT if mode == "xhr" else ""

    def render_login(error: str = ""):
        return LOGIN_PAGE.format(
            error=error,
            error_style="" if error else "display: none",
            script=script,
        )

    @app.route("/login", methods=["GET"])
    def login_page():
        return render_login()

    @app.route("/login", methods=["POST"])
    def login():
        if request.is_json:
            if not _valid(request.get_json(silent=True) or {}):
                return jsonify({"error": "Username and password incorrect"}), 401
            response = make_response(jsonify({"redirect": "/dashboard"}))
        else:
            if not _valid(request.form):
                return render_login("Username and password incorrect"), 401
            response = make_response(redirect("/dashboard"))

        response.set_cookie(SESSION_COOKIE, "1-session-" + VALID_USERNAME, httponly=True)
        return response

    @app.route("/unauthorized")
    def unauthorized():
        return "<h3>You are not logged in and cannot access this page</h3>"

    @app.route("/<page>")
    def protected(page: str):
        if page not in PROTECTED_PAGES:
            return "Not found", 404
        if not request.cookies.get(SESSION_COOKIE):
            return redirect("/unauthorized")
        return f"<h2>{page}.html</h2>"

    return app


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Session Harness demo login app")
    parser.add_argument("--mode", choices=["form", "xhr"], default="xhr")
    parser.add_argument("--port", type=int, default=8083)
    args = parser.parse_args()
    create_app(args.mode).run(debug=True, host="127.0.0.1", port=args.port)
