"""Print launch for the summary report, kept apart from the aggregation code.

Opening a print dialog is a user-visible side effect in some viewing surface
(a browser tab, a popup).  Callers hand a finished HTML document to
``launch_print`` together with a launcher; nothing comes back and launcher
failures are logged, not raised.
"""

import json
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

PrintLauncher = Callable[[str], None]


def popup_print_script(document: str) -> str:
    """Build an HTML snippet that opens ``document`` in a new window and prints it.

    The document is embedded as a JSON string literal so that quotes, newlines
    and ``</script>`` sequences inside it cannot break out of the script tag.
    """
    payload = json.dumps(document).replace("</", "<\\/")
    return (
        "<script>\n"
        "(function () {\n"
        '  var w = window.open("", "_blank");\n'
        "  if (!w) { return; }\n"
        f"  w.document.write({payload});\n"
        "  w.document.close();\n"
        "  w.focus();\n"
        "})();\n"
        "</script>"
    )


def launch_print(document: str, launcher: PrintLauncher) -> None:
    """Fire-and-forget: hand the document to the launcher, log any failure."""
    try:
        launcher(document)
    except Exception:
        logger.exception("Failed to open print view")
