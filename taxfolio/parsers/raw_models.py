# taxfolio/parsers/raw_models.py
from typing import Optional, Any

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator


class RawBaseRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator('*', mode='before')
    @classmethod
    def strip_strings(cls, v: Any) -> Any:
        # Empty cells become None so "missing" has one representation downstream
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class RawTransaction(RawBaseRecord):
    """
    One row of a brokerage transaction export, as text.
    Headers are matched by alias (English export wording first, Portuguese/German DEGIRO
    variants second). Type coercion happens in the normalizer, not here.
    """
    row_number: int = 0 # 1-based data row index, set by the parser

    date: str = Field(validation_alias=AliasChoices("Date", "Data", "Datum"))
    time: Optional[str] = Field(None, validation_alias=AliasChoices("Time", "Hora", "Zeit"))
    product: Optional[str] = Field(None, validation_alias=AliasChoices("Product", "Produto", "Produkt"))
    isin: Optional[str] = Field(None, validation_alias=AliasChoices("ISIN"))
    description: Optional[str] = Field(None, validation_alias=AliasChoices("Description", "Descrição", "Beschreibung"))
    order_type: Optional[str] = Field(None, validation_alias=AliasChoices("OrderType", "Order Type", "Type"))
    transaction_type: Optional[str] = Field(None, validation_alias=AliasChoices("TransactionType", "Transaction Type"))
    quantity: Optional[str] = Field(None, validation_alias=AliasChoices("Quantity", "Quantidade", "Anzahl"))
    price: Optional[str] = Field(None, validation_alias=AliasChoices("Price", "Preço", "Kurs"))
    amount: Optional[str] = Field(None, validation_alias=AliasChoices("Amount", "Montante", "Betrag"))
    currency: Optional[str] = Field(None, validation_alias=AliasChoices("Currency", "Moeda", "Währung"))
    commission: Optional[str] = Field(None, validation_alias=AliasChoices("Commission", "Custos de transação", "Transaktionskosten"))
    order_id: Optional[str] = Field(None, validation_alias=AliasChoices("OrderId", "Order ID", "ID da Ordem"))
    exchange_rate: Optional[str] = Field(None, validation_alias=AliasChoices("ExchangeRate", "Exchange Rate", "Taxa de Câmbio"))
    country_code: Optional[str] = Field(None, validation_alias=AliasChoices("CountryCode", "Country Code", "Country"))

    # Option contract columns
    contract_type: Optional[str] = Field(None, validation_alias=AliasChoices("ContractType", "Put/Call"))
    strike: Optional[str] = Field(None, validation_alias=AliasChoices("Strike"))
    expiry: Optional[str] = Field(None, validation_alias=AliasChoices("Expiry", "Expiration"))
    multiplier: Optional[str] = Field(None, validation_alias=AliasChoices("Multiplier"))
    underlying_isin: Optional[str] = Field(None, validation_alias=AliasChoices("UnderlyingISIN", "Underlying ISIN"))
    underlying_product: Optional[str] = Field(None, validation_alias=AliasChoices("UnderlyingProduct", "Underlying Product", "Underlying"))
