def order_number(order_id):
    """
    Human-readable order reference, e.g. ORD9F3A12BC
    """
    return "ORD" + str(order_id).replace("-", "")[-8:].upper()
