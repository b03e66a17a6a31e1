import logging

from flask import Flask, jsonify

from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from zkwallet.config import WalletConfig

from wallet_routes import wallet_bp, init_wallet_bp

DB_PATH = 'db.json'   #Storage DB


def create_app(db=None, engine=None, config=None, hasher=None):
    """Flask 앱을 만든다.

    db를 주지 않으면 DB_PATH의 TinyDB 파일을 쓴다.
    config를 주지 않으면 환경 변수(ZKWALLET_*)에서 읽는다.
    engine을 주지 않으면 config.engine으로 고른다:
      ZKWALLET_ENGINE=native  NativeEngine (기본)
      ZKWALLET_ENGINE=nargo   NargoEngine (ZKWALLET_NARGO, ZKWALLET_BB, ZKWALLET_CIRCUITS_DIR)
    """
    if db is None:
        db = TinyDB(DB_PATH)
    if config is None:
        config = WalletConfig.from_env()

    app = Flask(__name__)
    init_wallet_bp(db, engine=engine, config=config, hasher=hasher)
    app.register_blueprint(wallet_bp)

    @app.route("/")
    def main():
        return jsonify({
            "service": "zkwallet",
            "n_tokens": config.n_tokens,
            "max_pending_orders": config.max_pending_orders,
            "global_depth": config.global_depth,
        })

    return app


def create_memory_app(**kwargs):
    """메모리 DB 앱 (테스트 / 데모용)"""
    return create_app(db=TinyDB(storage=MemoryStorage), **kwargs)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    create_app().run(debug=True)
