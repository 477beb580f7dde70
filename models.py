from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal
from typing import Any, List, Optional


class SchemaModel(BaseModel):
    """Base for GST e-invoice schema blocks (PascalCase keys on the wire)"""
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, allow_inf_nan=False)


class TranDtls(SchemaModel):
    tax_sch: str = ""
    sup_typ: str = ""
    reg_rev: str = ""


class DocDtls(SchemaModel):
    typ: str = ""
    no: str = ""
    dt: str = ""


class SellerDtls(SchemaModel):
    gstin: str = ""
    lgl_nm: str = ""
    trd_nm: str = ""
    addr1: str = ""
    addr2: str = ""
    loc: str = ""
    pin: int = 0
    stcd: str = ""


class BuyerDtls(SchemaModel):
    gstin: str = ""
    lgl_nm: str = ""
    trd_nm: str = ""
    pos: str = ""
    addr1: str = ""
    addr2: str = ""
    loc: str = ""
    pin: int = 0
    stcd: str = ""


class Item(SchemaModel):
    sl_no: str = ""
    prd_desc: str = ""
    is_servc: str = ""
    hsn_cd: str = ""
    qty: float = 0.0
    unit: str = ""
    unit_price: float = 0.0
    gst_rt: float = 0.0
    # Derived by calculator.calculate_totals
    tot_amt: float = 0.0
    ass_amt: float = 0.0
    igst_amt: float = 0.0
    tot_item_val: float = 0.0


class ValDtls(SchemaModel):
    ass_val: float = 0.0
    igst_val: float = 0.0
    tot_inv_val: float = 0.0


class ExpDtls(SchemaModel):
    for_cur: Optional[Any] = None
    cnt_code: Optional[Any] = None


class EInvoice(SchemaModel):
    version: str = ""
    tran_dtls: TranDtls = Field(default_factory=TranDtls)
    doc_dtls: DocDtls = Field(default_factory=DocDtls)
    seller_dtls: SellerDtls = Field(default_factory=SellerDtls)
    buyer_dtls: BuyerDtls = Field(default_factory=BuyerDtls)
    item_list: List[Item] = Field(default_factory=list)
    val_dtls: ValDtls = Field(default_factory=ValDtls)
    exp_dtls: ExpDtls = Field(default_factory=ExpDtls)


class SupplierIn(BaseModel):
    name: str = ""
    gstin: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: int = 0
    phone: str = ""
    email: str = ""
