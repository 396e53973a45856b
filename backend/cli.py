"""CLI tool for admin operations.

Usage:
    python -m backend.cli create-admin
    python -m backend.cli add-account
    python -m backend.cli generate-api-key
    python -m backend.cli check-symbols
"""

import sys
import getpass

from sqlmodel import Session, select

from backend.database import engine, create_db_and_tables
from backend.models.trading_account import TradingAccount
from backend.models.user import User
from backend.schemas.account import AccountCreate
from backend.services.auth import hash_password, generate_totp_secret, get_totp_uri, generate_api_key
from backend.services.encryption import encrypt
from backend.services.normalizer import is_valid_symbol, suggest_symbol
from backend.utils.constants import EXCHANGE_OKX, SUPPORTED_EXCHANGES

COMMANDS = ("create-admin", "add-account", "generate-api-key", "check-symbols")


def create_admin():
    """Create an admin user with TOTP setup."""
    create_db_and_tables()

    username = input("Username: ").strip()
    if not username:
        print("Username cannot be empty.")
        sys.exit(1)

    with Session(engine) as session:
        if session.exec(select(User).where(User.username == username)).first():
            print(f"User '{username}' already exists.")
            sys.exit(1)

    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Confirm password: "):
        print("Passwords do not match.")
        sys.exit(1)

    totp_secret = generate_totp_secret()
    totp_uri = get_totp_uri(totp_secret, username)

    with Session(engine) as session:
        session.add(User(
            username=username,
            hashed_password=hash_password(password),
            totp_secret=totp_secret,
        ))
        session.commit()

    print(f"\nAdmin user '{username}' created.")
    print(f"TOTP URI: {totp_uri}")

    try:
        import qrcode
        qr = qrcode.QRCode(box_size=1, border=1)
        qr.add_data(totp_uri)
        qr.make(fit=True)
        qr.print_ascii(invert=True)
    except ImportError:
        print("(Install the 'cli' extra to display the QR code in the terminal)")


def add_account():
    """Register a trading account with encrypted credentials."""
    create_db_and_tables()

    name = input("Account name: ").strip()
    exchange = input(f"Exchange {SUPPORTED_EXCHANGES}: ").strip().lower()
    symbol = input("Symbol: ").strip()
    api_key = input("API key / wallet address: ").strip()
    api_secret = getpass.getpass("API secret / signer private key: ").strip()
    passphrase = getpass.getpass("Passphrase: ").strip() if exchange == EXCHANGE_OKX else ""

    try:
        data = AccountCreate(
            name=name,
            exchange=exchange,
            symbol=symbol,
            api_key=api_key,
            api_secret=api_secret,
            passphrase=passphrase,
        )
    except ValueError as e:
        print(f"Invalid account: {e}")
        sys.exit(1)

    account = TradingAccount(
        name=data.name,
        symbol=data.symbol,
        exchange=data.exchange,
        status=data.status,
        api_key_encrypted=encrypt(data.api_key),
        api_secret_encrypted=encrypt(data.api_secret),
        passphrase_encrypted=encrypt(data.passphrase),
    )
    with Session(engine) as session:
        session.add(account)
        session.commit()
        session.refresh(account)
        print(f"Account '{account.name}' created with id {account.id}")


def print_api_key():
    """Print a fresh API key. Append it to MON_API_KEYS to enable it."""
    print(generate_api_key())


def check_symbols():
    """Report registered accounts whose symbol does not match their exchange's format."""
    create_db_and_tables()

    with Session(engine) as session:
        accounts = session.exec(select(TradingAccount).order_by(TradingAccount.name)).all()

    bad = 0
    for account in accounts:
        if is_valid_symbol(account.symbol, account.exchange):
            continue
        bad += 1
        suggestion = suggest_symbol(account.symbol, account.exchange)
        hint = f" -> {suggestion}" if suggestion else ""
        print(f"{account.name} ({account.exchange}): {account.symbol}{hint}")

    print(f"{len(accounts)} accounts checked, {bad} invalid")
    if bad:
        sys.exit(1)


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m backend.cli <command>")
        print(f"Commands: {', '.join(COMMANDS)}")
        sys.exit(1)

    command = sys.argv[1]
    if command == "create-admin":
        create_admin()
    elif command == "add-account":
        add_account()
    elif command == "generate-api-key":
        print_api_key()
    elif command == "check-symbols":
        check_symbols()
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
