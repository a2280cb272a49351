#!/usr/bin/env python3
"""
otp_cli.py — CLI wrapper cho token_core (otpauth:// token)

Cung cấp các subcommand:
- init   : tạo secret mới, in ra otpauth URI
- show   : hiển thị thông tin token từ URI
- codes  : sinh mã OTP hiện tại (TOTP kèm mã kế tiếp, HOTP kèm URI đã cập nhật)
- uri    : export lại URI chuẩn (tùy chọn in QR code ra terminal)
- rename : đặt issuer / label alias, in URI nội bộ để lưu lại

Ví dụ:
    otp-token init --account alice@example --issuer MyService
    otp-token codes "otpauth://totp/MyService:alice@example?secret=JBSWY3DPEHPK3PXP"
    otp-token uri "otpauth://hotp/ACME:bob?secret=JBSWY3DPEHPK3PXP&counter=4" --qr
"""

import argparse
import logging
import sys
import time

import pyotp
import qrcode

from token_core.errors import CryptoFailure, InvalidTokenUri
from token_core.otp_core import (
    DEFAULT_ALGORITHM,
    DEFAULT_COUNTER,
    DEFAULT_DIGITS,
    DEFAULT_PERIOD,
    SECRET_BYTES,
)
from token_core.token import Token, TokenType

logger = logging.getLogger(__name__)


def _load(args) -> Token:
    return Token.parse(args.uri, allow_internal_fields=args.internal)


# --- CLI command handlers ---
def cmd_init(args):
    secret = pyotp.random_base32(length=SECRET_BYTES * 8 // 5)
    token = Token.from_fields(
        args.type,
        args.account,
        secret,
        issuer_external=args.issuer,
        issuer_internal=args.issuer or None,
        algorithm=args.algorithm,
        digits=args.digits,
        period=args.period,
        counter=args.counter,
    )
    logger.debug("Generated %d-bit secret for %s", SECRET_BYTES * 8, token.get_id())
    print(f"[*] otpauth URI for '{token.get_id()}' (import into authenticator apps):")
    print("   ", token.to_uri())


def cmd_show(args):
    token = _load(args)
    print(f"ID:        {token.get_id()}")
    print(f"Issuer:    {token.get_issuer()}")
    print(f"Label:     {token.get_label()}")
    print(f"Type:      {token.token_type.name}")
    print(f"Algorithm: {token.algorithm}")
    print(f"Digits:    {token.digits}")
    print(f"Period:    {token.period}s")
    if token.token_type is TokenType.HOTP:
        print(f"Counter:   {token.counter}")


def _print_codes(token: Token, codes) -> None:
    now = int(time.time() * 1000)
    print(f"{token.get_id()}: {codes.code}  (valid ~{codes.remaining_ms(now) // 1000:2d}s)")
    if codes.next is not None:
        print(f"next: {codes.next.code}")


def cmd_codes(args):
    token = _load(args)
    codes = token.generate_codes()
    _print_codes(token, codes)
    if codes.changed:
        print("[*] Counter advanced, store the updated token:")
        print("   ", token.to_uri(include_internal=True))
        return

    if not args.watch:
        return
    print("Press Ctrl+C to quit.\n")
    try:
        while True:
            time.sleep(1)
            # hết cửa sổ đầu tiên thì active() chuyển sang next: sinh lại để in đúng code
            if codes.active() is not codes:
                codes = token.generate_codes()
                _print_codes(token, codes)
            else:
                print(f".. {codes.remaining_ms() // 1000:2d}s left", end="\r", flush=True)
    except KeyboardInterrupt:
        print("\nBye.")


def cmd_uri(args):
    token = _load(args)
    uri = token.to_uri(include_internal=args.internal)
    print(uri)
    if args.qr:
        qr = qrcode.QRCode(border=1)
        qr.add_data(uri)
        qr.make(fit=True)
        qr.print_ascii(invert=True)


def cmd_rename(args):
    token = Token.parse(args.uri, allow_internal_fields=True)
    changed = False
    if args.issuer is not None:
        changed |= token.set_issuer(args.issuer)
    if args.label is not None:
        changed |= token.set_label(args.label)
    if not changed:
        print(f"[*] Nothing changed for '{token.get_id()}'")
        return
    print(f"[*] '{token.get_id()}' is now shown as {token.get_issuer()}:{token.get_label()}; store the updated token:")
    print("   ", token.to_uri(include_internal=True))


def cmd_help(args):
    print("'otp-token -h' for help.")


# --- Argparse builder ---
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="otp-token", description="otpauth:// HOTP/TOTP token tool")
    p.add_argument("--verbose", action="store_true", help="Verbose output")
    sub = p.add_subparsers(dest="cmd")
    p.set_defaults(func=cmd_help)

    # init
    pi = sub.add_parser("init", help="Generate a new token secret and print its otpauth URI")
    pi.add_argument("--account", required=True, help="Account label for otpauth URI")
    pi.add_argument("--issuer", default="", help="Issuer for otpauth URI")
    pi.add_argument("--type", choices=("totp", "hotp"), default="totp")
    pi.add_argument("--algorithm", default=DEFAULT_ALGORITHM, help="HMAC algorithm (sha1, sha256, sha512, ...)")
    pi.add_argument("--digits", type=int, default=DEFAULT_DIGITS, help="Number of OTP digits")
    pi.add_argument("--period", type=int, default=DEFAULT_PERIOD, help="TOTP time step (seconds)")
    pi.add_argument("--counter", type=int, default=DEFAULT_COUNTER, help="HOTP counter already used; the URI resumes at counter + 1")
    pi.set_defaults(func=cmd_init)

    # show / codes / uri nhận URI làm tham số đầu tiên
    def add_uri_args(parser):
        parser.add_argument("uri", help="otpauth:// URI")
        parser.add_argument("--internal", action="store_true",
                            help="Trust issueralt/labelalt in the URI (own backups only)")

    ps = sub.add_parser("show", help="Show token details")
    add_uri_args(ps)
    ps.set_defaults(func=cmd_show)

    pc = sub.add_parser("codes", help="Generate the current code (and next code for TOTP)")
    add_uri_args(pc)
    pc.add_argument("--watch", action="store_true", help="Keep refreshing TOTP codes until Ctrl+C")
    pc.set_defaults(func=cmd_codes)

    pu = sub.add_parser("uri", help="Re-export the token as an otpauth URI")
    add_uri_args(pu)
    pu.add_argument("--qr", action="store_true", help="Also print the URI as a terminal QR code")
    pu.set_defaults(func=cmd_uri)

    pr = sub.add_parser("rename", help="Set issuer/label aliases")
    pr.add_argument("uri", help="otpauth:// URI")
    pr.add_argument("--issuer", help="Issuer alias (pass the original issuer to clear)")
    pr.add_argument("--label", help="Label alias (pass the original label to clear)")
    pr.set_defaults(func=cmd_rename)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="[+] %(message)s")
    try:
        args.func(args)
    except (InvalidTokenUri, CryptoFailure) as e:
        print(f"[!] {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
