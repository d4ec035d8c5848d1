"""
Menu and finish-handler assets for merged SCORM packages.

The merged package opens on a generated menu (markup, script, stylesheet)
that lists every included package. Each package page gets a small script
injected that sends the learner back to that menu when the content tries
to finish, exit or close.
"""

from __future__ import annotations

import json
import re
from typing import Dict, List, Sequence

from app.models.package import PackageMetadata

MENU_HTML = "menu/index.html"
MENU_JS = "menu/menu.js"
MENU_CSS = "menu/style.css"
DEFAULT_ENTRY_POINT = "index.html"
DEFAULT_DESCRIPTION = "SCORM learning module"
FINISH_HANDLER_MARKER = "<!-- SCORM Merge Finish Handler -->"
MAX_API_HOPS = 7


def escape_xml(text: str) -> str:
    """Escape the five XML special characters"""
    if not text:
        return ""

    return (text
            .replace("&", "&amp;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
            .replace("\"", "&quot;")
            .replace("'", "&#39;"))


def package_folder(index: int) -> str:
    """Namespaced folder for the package at zero-based position ``index``"""
    return f"package_{index + 1}"


def entry_point(pkg: PackageMetadata) -> str:
    return pkg.main_href or DEFAULT_ENTRY_POINT


def _menu_item_html(index: int, pkg: PackageMetadata) -> str:
    number = index + 1
    description = pkg.description or DEFAULT_DESCRIPTION
    return f"""
            <div class="menu-item" data-package="{number}">
                <h3>{escape_xml(pkg.display_title)}</h3>
                <p class="package-description">{escape_xml(description)}</p>
                <p class="package-info">SCORM {escape_xml(pkg.version)} &#8226; {escape_xml(pkg.filename or "")}</p>
                <button type="button" onclick="launchPackage({number})">Launch Module</button>
            </div>"""


def create_menu_html(packages: Sequence[PackageMetadata]) -> str:
    if packages:
        items = "".join(
            _menu_item_html(index, pkg) for index, pkg in enumerate(packages)
        )
    else:
        items = """
            <p class="menu-empty">No course modules are available.</p>"""

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Course Menu</title>
    <link rel="stylesheet" href="style.css">
</head>
<body>
    <div class="menu-container">
        <h1>Course Menu</h1>
        <p>Select a course module to begin:</p>
        <div class="menu-list">{items}
        </div>
    </div>
    <script src="menu.js"></script>
</body>
</html>
"""


def create_menu_js(packages: Sequence[PackageMetadata]) -> str:
    package_data: List[Dict[str, str]] = [
        {"title": pkg.display_title, "mainFile": entry_point(pkg)}
        for pkg in packages
    ]
    # Keep "</" out of the embedded JSON
    package_json = json.dumps(package_data, ensure_ascii=False).replace("</", "<\\/")

    return """// SCORM API detection and course menu navigation
var scormAPI = null;
var packageData = %(package_json)s;

function findAPI(win) {
    var findAPITries = 0;
    while ((win.API == null) && (win.parent != null) && (win.parent != win)) {
        findAPITries++;
        if (findAPITries > %(max_hops)d) {
            return null;
        }
        win = win.parent;
    }
    return win.API;
}

function initializeSCORM() {
    scormAPI = findAPI(window);
    if (scormAPI) {
        scormAPI.LMSInitialize("");
        scormAPI.LMSSetValue("cmi.core.lesson_status", "incomplete");
        scormAPI.LMSCommit("");
    }
}

function finishSCORM() {
    if (scormAPI) {
        scormAPI.LMSSetValue("cmi.core.lesson_status", "completed");
        scormAPI.LMSCommit("");
        scormAPI.LMSFinish("");
    }
}

function launchPackage(packageNum) {
    var pkg = packageData[packageNum - 1];
    if (!pkg) {
        return;
    }

    if (scormAPI) {
        scormAPI.LMSSetValue("cmi.core.lesson_status", "completed");
        scormAPI.LMSCommit("");
    }

    // Remembered by the finish handler injected into package pages
    sessionStorage.setItem('currentPackage', packageNum.toString());
    sessionStorage.setItem('menuPath', window.location.pathname);

    window.location.href = '../package_' + packageNum + '/' + pkg.mainFile;
}

function returnToMenu() {
    var menuPath = sessionStorage.getItem('menuPath');
    if (scormAPI) {
        scormAPI.LMSSetValue("cmi.core.lesson_status", "completed");
        scormAPI.LMSCommit("");
    }
    window.location.href = menuPath || '../menu/index.html';
}

window.returnToMenu = returnToMenu;
try {
    window.parent.returnToMenu = returnToMenu;
} catch (e) {
    // Cross-origin parent
}

document.addEventListener('DOMContentLoaded', function() {
    initializeSCORM();
});

window.addEventListener('beforeunload', function() {
    finishSCORM();
});
""" % {"package_json": package_json, "max_hops": MAX_API_HOPS}


MENU_CSS_CONTENT = """body {
    font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', 'Roboto', 'Helvetica Neue', sans-serif;
    margin: 0;
    padding: 20px;
    background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
    min-height: 100vh;
    color: #333;
}

.menu-container {
    max-width: 800px;
    margin: 0 auto;
    background: white;
    border-radius: 12px;
    padding: 2rem;
    box-shadow: 0 10px 30px rgba(0, 0, 0, 0.2);
}

h1 {
    text-align: center;
    margin-bottom: 0.5rem;
    font-size: 2.5rem;
}

.menu-container > p,
.menu-empty {
    text-align: center;
    color: #666;
    margin-bottom: 2rem;
    font-size: 1.1rem;
}

.menu-list {
    display: flex;
    flex-direction: column;
    gap: 1rem;
}

.menu-item {
    background: #f8f9fa;
    border-radius: 8px;
    padding: 1.5rem;
    border-left: 4px solid #667eea;
    transition: all 0.3s ease;
}

.menu-item:hover {
    background: #e9ecef;
    transform: translateY(-2px);
    box-shadow: 0 4px 12px rgba(0, 0, 0, 0.1);
}

.menu-item h3 {
    margin: 0 0 0.5rem 0;
    font-size: 1.3rem;
}

.package-description {
    color: #555;
    font-size: 0.95rem;
    margin: 0 0 0.75rem 0;
    line-height: 1.4;
    font-style: italic;
}

.package-info {
    color: #666;
    font-size: 0.9rem;
    margin: 0 0 1rem 0;
}

.menu-item button {
    background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
    color: white;
    border: none;
    padding: 0.75rem 1.5rem;
    border-radius: 6px;
    cursor: pointer;
    font-size: 1rem;
}

@media (max-width: 768px) {
    .menu-container {
        padding: 1rem;
        border-radius: 0;
    }

    h1 {
        font-size: 2rem;
    }
}
"""


def create_menu_files(packages: Sequence[PackageMetadata]) -> Dict[str, str]:
    """The three menu assets, keyed by their path inside the merged package"""
    return {
        MENU_HTML: create_menu_html(packages),
        MENU_JS: create_menu_js(packages),
        MENU_CSS: MENU_CSS_CONTENT,
    }


FINISH_HANDLER_SCRIPT = FINISH_HANDLER_MARKER + r"""
<script>
(function() {
    'use strict';

    function returnToMenu() {
        try {
            if (window.API && window.API.LMSSetValue) {
                window.API.LMSSetValue("cmi.core.lesson_status", "completed");
                window.API.LMSCommit("");
                window.API.LMSFinish("");
            }
        } catch (e) {
            console.log('SCORM completion attempted:', e.message);
        }

        var menuPath = sessionStorage.getItem('menuPath');
        window.location.href = menuPath || '../menu/index.html';
    }

    window.returnToMenu = returnToMenu;
    try {
        window.parent.returnToMenu = returnToMenu;
    } catch (e) {
        // Cross-origin parent
    }

    document.addEventListener('DOMContentLoaded', function() {
        var finishSelectors = [
            'a[href*="close"]', 'a[href*="exit"]', 'a[href*="finish"]',
            'button[onclick*="close"]', 'button[onclick*="exit"]', 'button[onclick*="finish"]',
            'input[value*="Finish"]', 'input[value*="Exit"]', 'input[value*="Close"]',
            '.finish', '.exit', '.close', '#finish', '#exit', '#close',
            '[id*="finish"]', '[id*="exit"]', '[id*="close"]'
        ];

        finishSelectors.forEach(function(selector) {
            try {
                document.querySelectorAll(selector).forEach(function(element) {
                    var text = element.textContent || element.value || element.title || '';
                    if (/\b(finish|exit|close|done|complete)\b/i.test(text)) {
                        element.addEventListener('click', function(e) {
                            e.preventDefault();
                            e.stopPropagation();
                            returnToMenu();
                        }, true);

                        if (element.tagName.toLowerCase() === 'a') {
                            element.href = 'javascript:returnToMenu();';
                        }
                    }
                });
            } catch (e) {
                // Unsupported selector
            }
        });

        window.close = function() {
            returnToMenu();
        };

        if (window.API && window.API.LMSFinish) {
            var originalFinish = window.API.LMSFinish;
            window.API.LMSFinish = function(param) {
                var result = originalFinish.call(this, param);
                setTimeout(returnToMenu, 500);
                return result;
            };
        }
    });
})();
</script>
"""

CLOSING_TAGS = ("</head>", "</body>", "</html>")


def inject_finish_handler(markup: str) -> str:
    """Splice the finish handler before the first closing tag found.

    Tags are tried in priority order (head, body, html); without any of
    them the script is appended. Pages that already carry the handler are
    returned unchanged.
    """
    if FINISH_HANDLER_MARKER in markup:
        return markup

    # Offsets come from the original string; lower() may change its length
    for tag in CLOSING_TAGS:
        match = re.search(re.escape(tag), markup, re.IGNORECASE)
        if match:
            position = match.start()
            return (
                markup[:position]
                + FINISH_HANDLER_SCRIPT
                + "\n"
                + markup[position:]
            )
    return markup + FINISH_HANDLER_SCRIPT
