"""macOS keychain backend (Security.framework via ctypes)."""

from __future__ import annotations

import ctypes
import ctypes.util
import logging

from keyferry.errors import VaultError
from keyferry.keychain.types import Accessibility, BackendKind
from keyferry.keychain.vault import (
    ERR_SEC_DUPLICATE_ITEM,
    ERR_SEC_ITEM_NOT_FOUND,
    DuplicateItemError,
    ItemNotFoundError,
    KeychainItem,
    VaultBackend,
)

logger = logging.getLogger(__name__)

ERR_SEC_SUCCESS = 0
K_CF_STRING_ENCODING_UTF8 = 0x08000100

_ACCESSIBLE_CONSTANTS = {
    Accessibility.WHEN_UNLOCKED: "kSecAttrAccessibleWhenUnlocked",
    Accessibility.AFTER_FIRST_UNLOCK: "kSecAttrAccessibleAfterFirstUnlock",
    Accessibility.ALWAYS: "kSecAttrAccessibleAlways",
    Accessibility.WHEN_PASSCODE_SET_THIS_DEVICE_ONLY: "kSecAttrAccessibleWhenPasscodeSetThisDeviceOnly",
    Accessibility.WHEN_UNLOCKED_THIS_DEVICE_ONLY: "kSecAttrAccessibleWhenUnlockedThisDeviceOnly",
    Accessibility.AFTER_FIRST_UNLOCK_THIS_DEVICE_ONLY: "kSecAttrAccessibleAfterFirstUnlockThisDeviceOnly",
    Accessibility.ALWAYS_THIS_DEVICE_ONLY: "kSecAttrAccessibleAlwaysThisDeviceOnly",
}


def accessibility_constant(accessibility: Accessibility) -> str | None:
    """Name of the kSecAttrAccessible* constant, or None to leave the OS default."""
    return _ACCESSIBLE_CONSTANTS.get(accessibility)


class _Frameworks:
    """CoreFoundation + Security bindings, loaded on first use."""

    def __init__(self) -> None:
        cf_path = ctypes.util.find_library("CoreFoundation")
        sec_path = ctypes.util.find_library("Security")
        if not cf_path or not sec_path:
            raise VaultError("Security.framework is not available on this platform")
        self.cf = ctypes.cdll.LoadLibrary(cf_path)
        self.sec = ctypes.cdll.LoadLibrary(sec_path)

        vp = ctypes.c_void_p
        cf, sec = self.cf, self.sec
        cf.CFStringCreateWithCString.argtypes = [vp, ctypes.c_char_p, ctypes.c_uint32]
        cf.CFStringCreateWithCString.restype = vp
        cf.CFStringGetCString.argtypes = [vp, ctypes.c_char_p, ctypes.c_long, ctypes.c_uint32]
        cf.CFStringGetCString.restype = ctypes.c_bool
        cf.CFDataCreate.argtypes = [vp, ctypes.c_char_p, ctypes.c_long]
        cf.CFDataCreate.restype = vp
        cf.CFDataGetLength.argtypes = [vp]
        cf.CFDataGetLength.restype = ctypes.c_long
        cf.CFDataGetBytePtr.argtypes = [vp]
        cf.CFDataGetBytePtr.restype = vp
        cf.CFDictionaryCreate.argtypes = [vp, ctypes.POINTER(vp), ctypes.POINTER(vp), ctypes.c_long, vp, vp]
        cf.CFDictionaryCreate.restype = vp
        cf.CFArrayCreate.argtypes = [vp, ctypes.POINTER(vp), ctypes.c_long, vp]
        cf.CFArrayCreate.restype = vp
        cf.CFRelease.argtypes = [vp]
        cf.CFRelease.restype = None

        sec.SecItemAdd.argtypes = [vp, ctypes.POINTER(vp)]
        sec.SecItemAdd.restype = ctypes.c_int32
        sec.SecItemCopyMatching.argtypes = [vp, ctypes.POINTER(vp)]
        sec.SecItemCopyMatching.restype = ctypes.c_int32
        sec.SecItemUpdate.argtypes = [vp, vp]
        sec.SecItemUpdate.restype = ctypes.c_int32
        sec.SecItemDelete.argtypes = [vp]
        sec.SecItemDelete.restype = ctypes.c_int32
        sec.SecCopyErrorMessageString.argtypes = [ctypes.c_int32, vp]
        sec.SecCopyErrorMessageString.restype = vp
        sec.SecKeychainOpen.argtypes = [ctypes.c_char_p, ctypes.POINTER(vp)]
        sec.SecKeychainOpen.restype = ctypes.c_int32

    def sec_const(self, name: str) -> int:
        return ctypes.c_void_p.in_dll(self.sec, name).value

    def cf_const(self, name: str) -> int:
        return ctypes.c_void_p.in_dll(self.cf, name).value

    def cf_symbol_address(self, name: str) -> int:
        # Callback tables are structs; CF wants their address, not their contents.
        return ctypes.addressof(ctypes.c_byte.in_dll(self.cf, name))

    def error_message(self, status: int) -> str:
        ref = self.sec.SecCopyErrorMessageString(status, None)
        if not ref:
            return f"keychain error {status}"
        try:
            buf = ctypes.create_string_buffer(1024)
            if self.cf.CFStringGetCString(ref, buf, len(buf), K_CF_STRING_ENCODING_UTF8):
                return buf.value.decode("utf-8", errors="replace")
            return f"keychain error {status}"
        finally:
            self.cf.CFRelease(ref)


class _Scope:
    """Collects CF objects created for one call and releases them on exit."""

    def __init__(self, fw: _Frameworks) -> None:
        self.fw = fw
        self._refs: list[int] = []

    def __enter__(self) -> _Scope:
        return self

    def __exit__(self, *exc) -> None:
        for ref in reversed(self._refs):
            self.fw.cf.CFRelease(ref)
        self._refs.clear()

    def own(self, ref: int | None) -> int:
        if not ref:
            raise VaultError("CoreFoundation allocation failed")
        self._refs.append(ref)
        return ref

    def string(self, value: str) -> int:
        return self.own(
            self.fw.cf.CFStringCreateWithCString(None, value.encode("utf-8"), K_CF_STRING_ENCODING_UTF8)
        )

    def data(self, value: bytes) -> int:
        return self.own(self.fw.cf.CFDataCreate(None, value, len(value)))

    def dictionary(self, pairs: list[tuple[int, int]]) -> int:
        n = len(pairs)
        keys = (ctypes.c_void_p * n)(*[k for k, _ in pairs])
        values = (ctypes.c_void_p * n)(*[v for _, v in pairs])
        return self.own(
            self.fw.cf.CFDictionaryCreate(
                None,
                keys,
                values,
                n,
                self.fw.cf_symbol_address("kCFTypeDictionaryKeyCallBacks"),
                self.fw.cf_symbol_address("kCFTypeDictionaryValueCallBacks"),
            )
        )

    def array(self, refs: list[int]) -> int:
        values = (ctypes.c_void_p * len(refs))(*refs)
        return self.own(
            self.fw.cf.CFArrayCreate(
                None, values, len(refs), self.fw.cf_symbol_address("kCFTypeArrayCallBacks")
            )
        )


class MacOSKeychain(VaultBackend):
    """VaultBackend over the macOS keychain.

    The data-protection and iCloud kinds only work from a signed binary that
    carries the keychain-access-groups entitlement; that is what the plugin
    helper exists for.
    """

    def __init__(self, keychain_path: str | None = None) -> None:
        self.keychain_path = keychain_path
        self._fw: _Frameworks | None = None

    @property
    def fw(self) -> _Frameworks:
        if self._fw is None:
            self._fw = _Frameworks()
        return self._fw

    def _check(self, status: int, what: str) -> None:
        if status == ERR_SEC_SUCCESS:
            return
        message = f"{what}: {self.fw.error_message(status)}"
        if status == ERR_SEC_DUPLICATE_ITEM:
            raise DuplicateItemError(message)
        if status == ERR_SEC_ITEM_NOT_FOUND:
            raise ItemNotFoundError(message)
        raise VaultError(message, status)

    def _open_keychain(self, scope: _Scope) -> int | None:
        if not self.keychain_path:
            return None
        ref = ctypes.c_void_p()
        self._check(
            self.fw.sec.SecKeychainOpen(self.keychain_path.encode("utf-8"), ctypes.byref(ref)),
            f"open keychain {self.keychain_path}",
        )
        return scope.own(ref.value)

    def _base(
        self, scope: _Scope, kind: BackendKind, account: str, service: str, *, for_add: bool = False
    ) -> list[tuple[int, int]]:
        fw = self.fw
        true = fw.cf_const("kCFBooleanTrue")
        pairs = [
            (fw.sec_const("kSecClass"), fw.sec_const("kSecClassGenericPassword")),
            (fw.sec_const("kSecAttrService"), scope.string(service)),
            (fw.sec_const("kSecAttrAccount"), scope.string(account)),
        ]
        if kind is BackendKind.DATA_PROTECTION:
            pairs.append((fw.sec_const("kSecUseDataProtectionKeychain"), true))
        elif kind is BackendKind.ICLOUD:
            pairs.append((fw.sec_const("kSecAttrSynchronizable"), true))
        else:
            keychain = self._open_keychain(scope)
            if keychain is not None:
                if for_add:
                    pairs.append((fw.sec_const("kSecUseKeychain"), keychain))
                else:
                    pairs.append((fw.sec_const("kSecMatchSearchList"), scope.array([keychain])))
        return pairs

    def add(self, item: KeychainItem) -> None:
        fw = self.fw
        with _Scope(fw) as scope:
            pairs = self._base(scope, item.kind, item.account, item.service, for_add=True)
            pairs.append((fw.sec_const("kSecAttrDescription"), scope.string(item.description)))
            pairs.append((fw.sec_const("kSecValueData"), scope.data(item.data)))
            constant = accessibility_constant(item.accessibility)
            if constant is not None:
                pairs.append((fw.sec_const("kSecAttrAccessible"), fw.sec_const(constant)))
            self._check(fw.sec.SecItemAdd(scope.dictionary(pairs), None), "add item")

    def query(self, kind: BackendKind, account: str, service: str) -> KeychainItem | None:
        fw = self.fw
        with _Scope(fw) as scope:
            pairs = self._base(scope, kind, account, service)
            pairs.append((fw.sec_const("kSecReturnData"), fw.cf_const("kCFBooleanTrue")))
            pairs.append((fw.sec_const("kSecMatchLimit"), fw.sec_const("kSecMatchLimitOne")))
            result = ctypes.c_void_p()
            status = fw.sec.SecItemCopyMatching(scope.dictionary(pairs), ctypes.byref(result))
            if status == ERR_SEC_ITEM_NOT_FOUND:
                return None
            self._check(status, "query item")
            data_ref = scope.own(result.value)
            length = fw.cf.CFDataGetLength(data_ref)
            data = ctypes.string_at(fw.cf.CFDataGetBytePtr(data_ref), length) if length else b""
        return KeychainItem(
            kind=kind,
            account=account,
            service=service,
            data=data,
            accessibility=Accessibility.DEFAULT,
        )

    def update(self, kind: BackendKind, account: str, service: str, data: bytes) -> None:
        fw = self.fw
        with _Scope(fw) as scope:
            query = scope.dictionary(self._base(scope, kind, account, service))
            attrs = scope.dictionary([(fw.sec_const("kSecValueData"), scope.data(data))])
            self._check(fw.sec.SecItemUpdate(query, attrs), "update item")

    def delete(self, kind: BackendKind, account: str, service: str) -> None:
        fw = self.fw
        with _Scope(fw) as scope:
            query = scope.dictionary(self._base(scope, kind, account, service))
            self._check(fw.sec.SecItemDelete(query), "delete item")
