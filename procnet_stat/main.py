from __future__ import annotations
import argparse, logging, sys, threading

from .collectors.loop import collector_loop, run
from .config import init_cfg_from_args
from .snapshot import Snapshot
from .web.app import create_app

log = logging.getLogger("procnet_stat")


def parse_args(argv=None):
    ap = argparse.ArgumentParser(prog="procnet-stat",
                                 description='Linux socket tables from /proc/net with owning processes')
    ap.add_argument('-t', '--tcp', dest='protocols', action='append_const', const='tcp')
    ap.add_argument('-u', '--udp', dest='protocols', action='append_const', const='udp')
    ap.add_argument('-U', '--udplite', dest='protocols', action='append_const', const='udplite')
    ap.add_argument('-w', '--raw', dest='protocols', action='append_const', const='raw')
    ap.add_argument('-S', '--sctp', dest='protocols', action='append_const', const='sctp')
    ap.add_argument('-g', '--groups', dest='protocols', action='append_const', const='igmp',
                    help='multicast group memberships')
    ap.add_argument('-x', '--unix', dest='protocols', action='append_const', const='unix')
    ap.add_argument('-4', '--inet', dest='families', action='append_const', const='ipv4')
    ap.add_argument('-6', '--inet6', dest='families', action='append_const', const='ipv6')
    mode = ap.add_mutually_exclusive_group()
    mode.add_argument('-a', '--all', action='store_true', help='listening and non-listening sockets')
    mode.add_argument('-l', '--listening', action='store_true', help='only listening sockets')
    ap.add_argument('-n', '--numeric', action='store_true', help="don't resolve names")
    ap.add_argument('--numeric-hosts', action='store_true')
    ap.add_argument('--numeric-ports', action='store_true')
    ap.add_argument('--numeric-users', action='store_true')
    ap.add_argument('-e', '--extend', dest='extended', action='store_true', help='show user and inode')
    ap.add_argument('-p', '--programs', dest='show_programs', action='store_true',
                    help='show PID/program name for sockets')
    ap.add_argument('-Z', '--context', dest='show_labels', action='store_true',
                    help='show security context for sockets')
    ap.add_argument('-o', '--timers', dest='show_timers', action='store_true')
    ap.add_argument('-W', '--wide', action='store_true', help="don't truncate addresses")
    ap.add_argument('-c', '--continuous', type=float, nargs='?', const=1.0, default=None,
                    metavar='INTERVAL', help='repeat every INTERVAL seconds (default 1)')
    ap.add_argument('--proc-root', type=str, default=None, help='procfs mount point (default /proc)')
    ap.add_argument('--config', type=str, default=None, help='YAML or JSON settings file')
    ap.add_argument('--serve', type=int, default=None, metavar='PORT',
                    help='serve the tables over HTTP instead of printing them')
    ap.add_argument('-v', '--verbose', action='store_true')
    return ap.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        format="[%(levelname)s] %(message)s", stream=sys.stderr)


def serve(cfg, port: int) -> int:
    snap = Snapshot()
    t = threading.Thread(target=collector_loop, args=(cfg, snap, cfg.interval or 1.0), daemon=True)
    t.start()

    app = create_app(cfg, snap)
    log.info("Serving on http://localhost:%d", port)
    app.run(host='0.0.0.0', port=port, debug=False, use_reloader=False)
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)
    try:
        cfg = init_cfg_from_args(args)
    except ValueError as e:
        log.error("%s", e)
        return 2

    if args.serve is not None:
        return serve(cfg, args.serve)

    try:
        return run(cfg, sys.stdout)
    except KeyboardInterrupt:
        return 0


if __name__ == '__main__':
    sys.exit(main())
