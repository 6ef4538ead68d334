"""
HTTP entrypoint for the voice clip catalog.

The HTTP server starts first so health checks can see the service come up;
the catalog is then built on the main thread.  Until it is ready both
endpoints answer ``503``.  If the bucket cannot be listed the server is shut
down and the process exits with status 1.

Endpoints:

* ``GET /clips/random`` – A random MP3 key and its transcript.
* ``GET /healthz`` – Readiness and current stage.

Configuration is read from the environment; see :mod:`voicecorpus.config`.
"""

import asyncio
import logging
import sys
import threading

from flask import Flask, jsonify
from werkzeug.serving import make_server

from .config import load_settings
from .errors import NoFilesError, NotInitializedError, StoreListingError
from .library import ClipLibrary
from .store import GCSObjectStore
from .transcoder import FfmpegTranscoder

logger = logging.getLogger(__name__)


def create_app(library: ClipLibrary) -> Flask:
    app = Flask(__name__)

    @app.route("/clips/random", methods=["GET"])
    def random_clip():
        try:
            clip = library.get_random_clip()
        except NotInitializedError:
            return jsonify({"error": "not initialized"}), 503
        except NoFilesError:
            return jsonify({"error": "no files"}), 404
        return jsonify({"key": clip.key, "transcript": clip.transcript}), 200

    @app.route("/healthz", methods=["GET"])
    def healthz():
        status = 200 if library.initialized else 503
        return jsonify({"ready": library.initialized, "stage": library.stage.value}), status

    return app


def main() -> int:
    """Serve clips until the process is stopped.

    Returns:
        Exit status: ``1`` when the bucket listing failed at startup.
    """
    settings = load_settings()
    logging.basicConfig(level=settings.log_level)
    if settings.config_path:
        logger.info("Loaded configuration from %s", settings.config_path)

    store = GCSObjectStore(settings.bucket_name, page_size=settings.list_page_size)
    transcoder = FfmpegTranscoder("mp3", binary=settings.ffmpeg_binary)
    library = ClipLibrary(store, transcoder, settings)

    server = make_server("0.0.0.0", settings.port, create_app(library), threaded=True)
    server_thread = threading.Thread(target=server.serve_forever, name="http-server", daemon=True)
    server_thread.start()
    logger.info("Serving clips from bucket %s on port %d", settings.bucket_name, settings.port)

    try:
        asyncio.run(library.init())
    except StoreListingError as exc:
        logger.error("Could not build the clip catalog, shutting down: %s", exc)
        server.shutdown()
        server_thread.join()
        return 1

    server_thread.join()
    return 0


if __name__ == "__main__":
    sys.exit(main())
