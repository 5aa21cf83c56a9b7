"""Application bootstrap/run helpers."""


def run_server(app, settings, log_bridge_system, log_bridge_exception, boot_steps):
    """Run startup steps, then start the threaded Flask server."""
    host = settings.web_host
    port = settings.web_port
    log_bridge_system("boot-start", command=f"host={host} port={port}")

    for step_name, step_func in boot_steps:
        try:
            step_func()
        except Exception as exc:
            log_bridge_exception(f"boot_step/{step_name}", exc)
            log_bridge_system("boot-failed", command=step_name, rejection_message=str(exc)[:500] or "startup step failed")
            raise

    log_bridge_system("boot-ready", command=f"host={host} port={port}")
    try:
        app.run(host=host, port=port, threaded=True)
    except Exception as exc:
        log_bridge_exception("boot_step/app.run", exc)
        log_bridge_system("boot-failed", command="app.run", rejection_message=str(exc)[:500] or "web server startup failed")
        raise
