"""
Vocabulary - Static lookup tables for parsing and resolution.

Maps element-type words to ARIA roles, intents to the roles they usually
act on, and verb/element synonyms to their canonical forms.
"""

from typing import Dict, List

# Element type -> ARIA roles it can surface as
ELEMENT_TYPE_TO_ROLES: Dict[str, List[str]] = {
    "button": ["button"],
    "link": ["link"],
    "input": ["textbox", "searchbox"],
    "textbox": ["textbox"],
    "field": ["textbox", "searchbox", "combobox"],
    "text field": ["textbox"],
    "text input": ["textbox"],
    "search": ["searchbox", "search"],
    "searchbox": ["searchbox"],
    "checkbox": ["checkbox"],
    "radio": ["radio"],
    "radio button": ["radio"],
    "select": ["combobox", "listbox"],
    "dropdown": ["combobox", "listbox"],
    "combobox": ["combobox"],
    "listbox": ["listbox"],
    "tab": ["tab"],
    "menu": ["menu"],
    "menu item": ["menuitem"],
    "menuitem": ["menuitem"],
    "heading": ["heading", "columnheader", "rowheader", "banner"],
    "header": ["heading", "columnheader", "rowheader", "banner"],
    "dialog": ["dialog", "alertdialog"],
    "modal": ["dialog"],
    "popup": ["dialog"],
    "switch": ["switch"],
    "slider": ["slider"],
    "progressbar": ["progressbar"],
    "tree": ["tree"],
    "treeitem": ["treeitem"],
    "grid": ["grid"],
    "row": ["row"],
    "cell": ["cell", "gridcell"],
    "table": ["table", "grid"],
    "columnheader": ["columnheader"],
    "column header": ["columnheader"],
    "alert": ["alert"],
    "tooltip": ["tooltip"],
    "img": ["img"],
    "image": ["img"],
    "navigation": ["navigation"],
    "region": ["region"],
    "section": ["region"],
    "banner": ["banner"],
    "form": ["form"],
    "option": ["option"],
    "list": ["list"],
    "listitem": ["listitem"],
    "list item": ["listitem"],
    "toggle button": ["button"],
    "submit": ["button"],
    "submit button": ["button"],
    "article": ["article"],
    "main": ["main"],
}

# Intent -> roles likely targeted when no element type is given
INTENT_TO_LIKELY_ROLES: Dict[str, List[str]] = {
    "click": ["button", "link", "menuitem", "tab", "checkbox", "radio"],
    "double-click": ["button", "link", "cell", "gridcell"],
    "right-click": ["button", "link", "cell", "gridcell"],
    "type": ["textbox", "searchbox", "combobox"],
    "fill": ["textbox", "searchbox", "combobox"],
    "clear": ["textbox", "searchbox", "combobox"],
    "select": ["combobox", "listbox", "option"],
    "check": ["checkbox", "switch"],
    "uncheck": ["checkbox", "switch"],
    "toggle": ["checkbox", "switch"],
    "hover": ["button", "link", "menuitem", "tooltip"],
    "focus": ["textbox", "button", "link"],
    "upload": ["button"],
    "verify-value": ["textbox", "combobox", "searchbox"],
    "get-value": ["textbox", "combobox", "searchbox"],
    "verify-enabled": ["button", "link", "textbox", "combobox", "checkbox", "radio"],
    "verify-disabled": ["button", "link", "textbox", "combobox", "checkbox", "radio"],
    "verify-checked": ["checkbox", "radio", "switch"],
    "verify-unchecked": ["checkbox", "radio", "switch"],
    "get-list": ["list", "listbox"],
    "sort-column": ["columnheader"],
}

# Roles given partial credit when nothing specific is expected
INTERACTIVE_ROLES = [
    "button", "link", "textbox", "combobox", "checkbox", "radio", "tab", "menuitem", "switch",
]

# Verb synonyms -> canonical verb (multi-word keys first is handled by the engine)
ACTION_SYNONYMS: Dict[str, str] = {
    "tap": "click",
    "press": "click",
    "hit": "click",
    "push": "click",
    "enter": "type",
    "input": "type",
    "write": "type",
    "put": "type",
    "pick": "select",
    "choose": "select",
    "ensure": "verify",
    "confirm": "verify",
    "assert": "verify",
    "validate": "verify",
    "expect": "verify",
    "should": "verify",
    "must": "verify",
    "mark": "check",
    "tick": "check",
    "untick": "uncheck",
    "unmark": "uncheck",
    "deselect": "uncheck",
    "read": "get",
    "extract": "get",
    "fetch": "get",
    "retrieve": "get",
    "capture": "get",
    "grab": "get",
    "go": "navigate",
    "open": "navigate",
    "visit": "navigate",
    "browse": "navigate",
    "mouse over": "hover",
    "mouseover": "hover",
    "empty": "clear",
    "erase": "clear",
    "remove": "clear",
    "pause": "wait",
    "double click": "double-click",
    "doubleclick": "double-click",
    "dbl click": "double-click",
    "dblclick": "double-click",
    "right click": "right-click",
    "rightclick": "right-click",
    "context click": "right-click",
    "focus on": "focus",
    "set focus": "focus",
}

# Element-type spellings -> canonical element type
ELEMENT_TYPE_SYNONYMS: Dict[str, str] = {
    "btn": "button",
    "buton": "button",
    "buttn": "button",
    "lnk": "link",
    "hyperlink": "link",
    "anchor": "link",
    "txt": "input",
    "textfield": "input",
    "text box": "input",
    "text field": "input",
    "text input": "input",
    "inputfield": "input",
    "input field": "input",
    "combo box": "dropdown",
    "drop down": "dropdown",
    "drop-down": "dropdown",
    "select box": "dropdown",
    "selectbox": "dropdown",
    "combo": "dropdown",
    "chk": "checkbox",
    "check box": "checkbox",
    "check-box": "checkbox",
    "rdo": "radio",
    "radio btn": "radio",
    "radio-button": "radio",
    "dlg": "dialog",
    "popup": "dialog",
    "pop-up": "dialog",
    "modal dialog": "dialog",
    "hdr": "heading",
    "header": "heading",
    "title": "heading",
    "img": "image",
    "pic": "image",
    "picture": "image",
    "icon": "image",
    "nav": "navigation",
    "navbar": "navigation",
    "nav bar": "navigation",
    "menu item": "menuitem",
    "menu-item": "menuitem",
    "menuentry": "menuitem",
    "tab item": "tab",
    "toggle": "switch",
    "toggleswitch": "switch",
    "toggle switch": "switch",
}

# Ordinal words -> 1-based index (-1 means last); insertion order is search order
ORDINAL_MAP: Dict[str, int] = {
    "first": 1, "1st": 1,
    "second": 2, "2nd": 2,
    "third": 3, "3rd": 3,
    "fourth": 4, "4th": 4,
    "fifth": 5, "5th": 5,
    "sixth": 6, "6th": 6,
    "seventh": 7, "7th": 7,
    "eighth": 8, "8th": 8,
    "ninth": 9, "9th": 9,
    "tenth": 10, "10th": 10,
    "last": -1,
}

# Intents that change the DOM and therefore stale the accessibility snapshot
DOM_MUTATING_INTENTS = frozenset({
    "click", "double-click", "right-click", "fill", "type", "clear", "select",
    "check", "uncheck", "toggle", "press-key", "upload", "drag", "navigate",
    "switch-tab", "open-new-tab", "close-tab", "clear-session", "switch-frame",
    "switch-main-frame", "accept-dialog", "dismiss-dialog", "sort-column",
})

# Assertions whose target being absent is the expected outcome
ABSENCE_INTENTS = frozenset({"verify-hidden", "verify-not-present"})

# Intents that read a whole table element
TABLE_INTENTS = frozenset({
    "get-table-data", "get-table-cell", "get-table-column", "get-table-row-count",
    "verify-table-cell", "verify-column-sorted", "verify-column-exists",
})

# Intents that never need an element
PAGE_LEVEL_INTENTS = frozenset({
    "navigate", "get-url", "get-title", "verify-url", "verify-title",
    "wait-seconds", "wait-url-change", "wait-page-load",
    "switch-tab", "open-new-tab", "close-tab", "clear-session",
    "switch-frame", "switch-main-frame", "accept-dialog", "dismiss-dialog",
    "handle-next-dialog", "verify-dialog-text", "take-screenshot",
    "clear-cookies", "get-cookie", "clear-storage", "set-storage-item",
    "get-storage-item", "get-url-param", "scroll",
})


def get_expected_roles(element_type: str | None, intent: str) -> List[str]:
    """
    ARIA roles a target is expected to have.

    Element-type roles win; intent roles apply only when the element type
    gives none.
    """
    roles: List[str] = []
    if element_type:
        roles.extend(ELEMENT_TYPE_TO_ROLES.get(element_type.lower(), []))
    if not roles:
        roles.extend(INTENT_TO_LIKELY_ROLES.get(intent, []))

    seen = set()
    unique = []
    for role in roles:
        if role not in seen:
            seen.add(role)
            unique.append(role)
    return unique
