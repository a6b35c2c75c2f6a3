#!/usr/bin/env python3
"""CLI entry point for lxd-env.

Drives the lifecycle of one LXD-backed environment described by a YAML
config file:

    lxd-env -c environ.yaml prepare
    lxd-env -c environ.yaml bootstrap --controller-uuid <uuid>
    lxd-env -c environ.yaml instances
    lxd-env -c environ.yaml destroy
    lxd-env -c environ.yaml destroy-controller <uuid>
    lxd-env generate-cert --cert-dir ~/.config/lxd-env
"""

import argparse
import json
import logging
import subprocess
import sys
from pathlib import Path

from common import ProviderError
from config import ConfigError, get_config_path, load_yaml, new_valid_config
from lxdclient.certs import DEFAULT_CERT_DIR, DEFAULT_CERT_NAME, generate_client_cert
from provider import BootstrapParams, Environ, load_cloud_spec, new_environ

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def open_environ(config_path: Path) -> Environ:
    """Load the config file and construct the environment."""
    data = load_yaml(config_path)
    ecfg = new_valid_config(data)
    cloud = load_cloud_spec(data.get('cloud') or {}, config_path.parent)
    return new_environ(cloud, ecfg)


def cmd_prepare(env: Environ, args: argparse.Namespace) -> int:
    env.prepare_for_bootstrap({})
    print(env.bootstrap_message())
    return EXIT_SUCCESS


def cmd_bootstrap(env: Environ, args: argparse.Namespace) -> int:
    params = BootstrapParams(
        controller_uuid=args.controller_uuid or env.uuid,
        image_alias=args.image,
        image_server=args.image_server,
    )
    result = env.bootstrap({'log': print}, params)
    print(json.dumps({
        'instance_id': result.instance_id,
        'machine_id': result.machine_id,
        'status': result.status,
        'config': result.config,
    }, indent=2))
    print(env.bootstrap_message())
    return EXIT_SUCCESS


def cmd_instances(env: Environ, args: argparse.Namespace) -> int:
    instances = env.all_instances()
    if not instances:
        print("No instances")
        return EXIT_SUCCESS
    for inst in instances:
        controller = ' (controller)' if inst.tags.is_controller else ''
        print(f"  {inst.id:30} {inst.status:10}{controller}")
    return EXIT_SUCCESS


def cmd_destroy(env: Environ, args: argparse.Namespace) -> int:
    env.destroy()
    logger.info(f"Environment {env.name} destroyed")
    return EXIT_SUCCESS


def cmd_destroy_controller(env: Environ, args: argparse.Namespace) -> int:
    env.destroy_controller(args.controller_uuid)
    logger.info(f"Controller {args.controller_uuid} destroyed")
    return EXIT_SUCCESS


def cmd_generate_cert(args: argparse.Namespace) -> int:
    try:
        cert = generate_client_cert(cert_dir=args.cert_dir, name=args.name, force=args.force)
    except (subprocess.CalledProcessError, OSError) as e:
        logger.error(f"error: generating certificate: {e}")
        return EXIT_FAILURE
    print(f"Fingerprint (SHA256): {cert.fingerprint()}")
    return EXIT_SUCCESS


ENV_COMMANDS = {
    'prepare': cmd_prepare,
    'bootstrap': cmd_bootstrap,
    'instances': cmd_instances,
    'destroy': cmd_destroy,
    'destroy-controller': cmd_destroy_controller,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='lxd-env',
        description='LXD environment lifecycle',
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        help='Environment config file (default: $LXD_ENV_CONFIG or ~/.config/lxd-env/environ.yaml)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('prepare', help='Enable the LXD HTTPS listener')

    bootstrap = sub.add_parser('bootstrap', help='Bootstrap the environment')
    bootstrap.add_argument(
        '--controller-uuid',
        help='Controller UUID to tag instances with (default: environment UUID)'
    )
    bootstrap.add_argument('--image', default='22.04', help='Image alias')
    bootstrap.add_argument(
        '--image-server',
        default='https://cloud-images.ubuntu.com/releases',
        help='Simplestreams image server'
    )

    sub.add_parser('instances', help='List instances in the environment namespace')
    sub.add_parser('destroy', help='Destroy the environment')

    destroy_ctrl = sub.add_parser(
        'destroy-controller',
        help='Destroy the environment and all models hosted by the controller'
    )
    destroy_ctrl.add_argument('controller_uuid', help='Controller UUID')

    gen = sub.add_parser('generate-cert', help='Generate a client certificate')
    gen.add_argument('--cert-dir', type=Path, default=DEFAULT_CERT_DIR, help='Output directory')
    gen.add_argument('--name', default=DEFAULT_CERT_NAME, help='Certificate name (CN)')
    gen.add_argument('--force', action='store_true', help='Overwrite existing certificate')

    return parser


def main(argv=None) -> int:
    """CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command == 'generate-cert':
        return cmd_generate_cert(args)

    try:
        env = open_environ(get_config_path(args.config))
    except ConfigError as e:
        logger.error(f"error: {e}")
        return EXIT_CONFIG_ERROR
    except ProviderError as e:
        logger.error(f"error: {e}")
        return EXIT_FAILURE

    with env:
        try:
            return ENV_COMMANDS[args.command](env, args)
        except ProviderError as e:
            logger.error(f"error: {e}")
            return EXIT_FAILURE


if __name__ == '__main__':
    sys.exit(main())
