"""
Módulo de créditos de clientes (fiado): emisión por faltante de una venta y
abonos hasta liquidar el saldo.
"""
