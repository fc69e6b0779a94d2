pytest_plugins = ["session_harness.pytest_plugin"]
