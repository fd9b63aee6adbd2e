"""
Módulo de turnos de caja

ENTIDADES PRINCIPALES:
- CashRegisterShift: turno de una caja con totales por tender y arqueo
- RegisterCounter: numeración de turnos por caja

FUNCIONALIDADES:
- Apertura con un solo turno abierto por (sucursal, caja)
- Ventas, movimientos de caja y abonos a crédito acumulados en el turno
- Cierre con efectivo esperado vs contado
- Cancelación de turnos sin ventas
- Recálculo y verificación de totales desde los eventos
"""
