import argparse
import getpass
import json
import sys
from typing import Optional, Sequence

from PySide6.QtCore import QCoreApplication, QEventLoop

from .client import SptfClient
from .config import Settings
from .errors import SptfError
from .models import DirectorySnapshot
from .session import Session
from .session_store import FileCredentialStore
from .transfers import BrowserDownloadLauncher, HttpDownloadLauncher, files_from_paths
from .utils import format_bytes


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='sptf')
    p.add_argument('--server', help='server origin, e.g. https://host:8766')
    p.add_argument('--session', help='credential store file')
    p.add_argument('--locale', choices=('en', 'zh'))
    sub = p.add_subparsers(dest='cmd', required=True)

    for name in ('login', 'signup'):
        auth = sub.add_parser(name)
        auth.add_argument('username')
        auth.add_argument('--password')

    sub.add_parser('logout')
    sub.add_parser('status')

    ls = sub.add_parser('ls')
    ls.add_argument('path', nargs='?', default='/')
    ls.add_argument('--json', action='store_true')

    mkdir = sub.add_parser('mkdir')
    mkdir.add_argument('path')

    upload = sub.add_parser('upload')
    upload.add_argument('dest')
    upload.add_argument('files', nargs='+')

    download = sub.add_parser('download')
    download.add_argument('paths', nargs='+')
    target = download.add_mutually_exclusive_group()
    target.add_argument('--out', default='.')
    target.add_argument('--browser', action='store_true')

    return p


def build_session(args: argparse.Namespace) -> Session:
    settings = Settings()
    if args.server:
        settings.server_url = args.server
    if args.session:
        settings.session_path = args.session
    if args.locale:
        settings.locale = args.locale
    client = SptfClient.from_settings(settings)
    store = FileCredentialStore(settings.session_path, domain=client.host)
    return Session(client, store, settings)


def _password(args: argparse.Namespace) -> str:
    return args.password if args.password is not None else getpass.getpass('Password: ')


def list_directory(session: Session, path: str) -> DirectorySnapshot:
    """Run a Qt event loop until ``path`` is listed or the session fails."""
    app = QCoreApplication.instance() or QCoreApplication([])
    outcome = {}
    loop = QEventLoop()

    def finish(key, value) -> None:
        outcome.setdefault(key, value)
        loop.quit()

    browser = session.open_browser(root=path, parent=app)
    browser.snapshot.connect(lambda snapshot: finish('snapshot', snapshot))
    browser.error.connect(lambda exc: finish('error', exc))
    browser.session_failed.connect(lambda exc: finish('error', exc))
    browser.start()
    if not outcome:
        loop.exec()
    browser.close()
    if 'error' in outcome:
        raise outcome['error']
    return outcome['snapshot']


def run(args: argparse.Namespace, session: Session) -> int:
    if args.cmd == 'login':
        session.login(args.username, _password(args))
        print(f'OK: logged in as {args.username}')
        return 0

    if args.cmd == 'signup':
        session.signup(args.username, _password(args))
        print(f'OK: account {args.username} created, you can log in now')
        return 0

    if args.cmd == 'logout':
        session.logout()
        print('OK: logged out')
        return 0

    if not session.restore():
        print('Not logged in (run: sptf login <username>)', file=sys.stderr)
        return 1

    if args.cmd == 'status':
        print(f'OK: session valid for {session.client.base_url}')
        return 0

    if args.cmd == 'ls':
        snapshot = list_directory(session, args.path)
        if args.json:
            rows = [{'name': e.name, 'path': e.path, 'kind': e.kind.value} for e in snapshot.entries]
            print(json.dumps({'path': snapshot.path, 'entries': rows}, indent=2))
        else:
            for entry in snapshot.entries:
                marker = 'd' if entry.is_dir else '-'
                print(f"{marker}\t{entry.name}")
        return 0

    if args.cmd == 'mkdir':
        session.transfers().make_directory(args.path)
        print('OK')
        return 0

    if args.cmd == 'upload':
        files = files_from_paths(args.files)
        session.transfers().upload(args.dest, files)
        total = sum(len(content) for _name, content in files)
        print(f'OK: uploaded {len(files)} file(s), {format_bytes(total)}')
        return 0

    if args.cmd == 'download':
        if args.browser:
            session.transfers(BrowserDownloadLauncher()).download(args.paths)
            print('OK: download handed to the browser')
            return 0
        launcher = HttpDownloadLauncher(session.client, args.out)
        session.transfers(launcher).download(args.paths)
        for saved in launcher.saved:
            print(f'OK: saved {saved}')
        return 0

    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    session = build_session(args)
    try:
        return run(args, session)
    except SptfError as exc:
        print(f'Error: {exc.user_message(session.settings.locale)}', file=sys.stderr)
        return 1
    except OSError as exc:
        print(f'Error: {exc}', file=sys.stderr)
        return 1
    finally:
        session.close()


if __name__ == '__main__':
    raise SystemExit(main())
