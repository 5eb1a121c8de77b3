# Request/reply routes of the SPTF file server; update if the server changes.

BASE_URL = "https://evian-workstation.local:8766"

AUTH = {
    "login": {
        "method": "POST",
        "path": "/login",
    },
    "logout": {
        "method": "POST",
        "path": "/logout",
    },
    "login_with_cookie": {
        "method": "POST",
        "path": "/login_with_cookie",
    },
    "signup": {
        "method": "POST",
        "path": "/signup",
    },
}

FILES = {
    "make_directory": {
        "method": "POST",
        "path": "/make_directory",
    },
    "upload": {
        "method": "POST",
        "path": "/upload",
    },
    "download": {
        "method": "GET",
        "path": "/download",
    },
}

SOCKET = {
    "session": {
        "path": "/ws",
        "token_param": "auth_token",
    }
}
