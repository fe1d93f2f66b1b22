from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class Transaction(db.Model):
    """Registro local das transações PIX criadas no gateway.
    Atualizado pelo webhook e pelas consultas de status; não guarda o carrinho.
    """
    id = db.Column(db.Integer, primary_key=True)
    tx_id = db.Column(db.String(64), unique=True, nullable=True, index=True)
    tx_hash = db.Column(db.String(128), unique=True, nullable=True, index=True)
    order_id = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(32), nullable=False, default='pending')
    brcode = db.Column(db.Text, nullable=True)  # copia-e-cola
    qr_code_base64 = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @classmethod
    def find(cls, id_or_hash):
        if not id_or_hash:
            return None
        return cls.query.filter(db.or_(cls.tx_id == id_or_hash, cls.tx_hash == id_or_hash)).first()

    def __repr__(self):
        return f'<Transaction {self.tx_id or self.tx_hash} {self.status}>'
