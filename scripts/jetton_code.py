"""Compiled jetton contract code (TEP-74 reference minter with admin ops 3/4)."""

JETTON_MINTER_CODE_HEX = (
    "b5ee9c72c1020d0100029c000000000d00120018002a006b007000bc0139018f02110218027b"
    "0114ff00f4a413f4bcf2c80b01020162050202037a600403001faf16f6a2687d007d206a6a18"
    "3faa9040007dadbcf6a2687d007d206a6a183618fc1400b82a1009aa0a01e428027d012c678b"
    "00e78b666491646580897a007a00658064fc80383a6465816503e5ffe4e8400202cc07060093"
    "b5f0508806e0a84026a8280790a009f404b19e2c039e2d99924591960225e801e80196019241"
    "f200e0e9919605940f97ff93a0ef003191960ab19e2ca009f4042796d625999992e3f60102f1"
    "d906380492f81f000e8698180b8d8492f81f07d207d2018fd0018b8eb90fd0018fd001801698"
    "fe99ff6a2687d007d206a6a18400aa9385d47199a9a9b1b289a6382f97024817d207d006a181"
    "06840306b90fd001812881a282178050a502819e428027d012c678b666664f6aa7041083deec"
    "bef29385d718140b0801a682102c76b9735270bae30235373723c0038e1a335035c705f2e049"
    "03fa403059c85004fa0258cf16ccccc9ed54e03502c0048e185124c705f2e049d4304300c850"
    "04fa0258cf16ccccc9ed54e05f05840ff2f00901fe365f03820898968015a015bcf2e04b02fa"
    "40d3003095c821cf16c9916de28210d1735400708018c8cb055005cf1624fa0214cb6a13cb1f"
    "14cb3f23fa443070ba8e33f828440370542013541403c85004fa0258cf1601cf16ccc922c8cb"
    "0112f400f400cb00c9f9007074c8cb02ca07cbffc9d0cf16966c227001cb01e2f4000a000ac9"
    "8040fb0001c036373701fa00fa40f82854120670542013541403c85004fa0258cf1601cf16cc"
    "c922c8cb0112f400f400cb00c9f9007074c8cb02ca07cbffc9d05006c705f2e04aa1034545c8"
    "5004fa0258cf16ccccc9ed5401fa403020d70b01c300915be30d0c003e8210d53276db708010"
    "c8cb055003cf1622fa0212cb6acb1fcb3fc98042fb002eedfd83"
)

JETTON_WALLET_CODE_HEX = (
    "b5ee9c72c1021101000323000000000d001200220027002c00700075007a00e8016801a801e2"
    "025e02af02b402bf0114ff00f4a413f4bcf2c80b010201620302001ba0f605da89a1f401f481"
    "f481a8610202cc0e0402012006050083d40106b90f6a2687d007d207d206a1802698fc1080bc"
    "6a28ca9105d41083deecbef09dd0958f97162e99f98fd001809d02811e428027d012c678b00e"
    "78b6664f6aa40201200c07020120090800d73b51343e803e903e90350c01f4cffe803e900c14"
    "5468549271c17cb8b049f0bffcb8b08160824c4b402805af3cb8b0e0841ef765f7b232c7c572"
    "cfd400fe8088b3c58073c5b25c60063232c14933c59c3e80b2dab33260103ec01004f214013e"
    "809633c58073c5b3327b552002f73b51343e803e903e90350c0234cffe80145468017e903e90"
    "14d6f1c1551cdb5c150804d50500f214013e809633c58073c5b33248b232c044bd003d0032c0"
    "327e401c1d3232c0b281f2fff274140371c1472c7cb8b0c2be80146a2860822625a019ad8228"
    "60822625a028062849e5c412440e0dd7c138c34975c2c0600b0a007cc30023c200b08e218210"
    "d53276db708010c8cb055008cf165004fa0216cb6a12cb1f12cb3fc972fb0093356c21e203c8"
    "5004fa0258cf1601cf16ccc9ed5400705279a018a182107362d09cc8cb1f5230cb3f58fa0250"
    "07cf165007cf16c9718010c8cb0524cf165006fa0215cb6a14ccc971fb001024102301f1503d"
    "33ffa00fa4021f001ed44d0fa00fa40fa40d4305136a1522ac705f2e2c128c2fff2e2c254344"
    "270542013541403c85004fa0258cf1601cf16ccc922c8cb0112f400f400cb00c920f9007074c"
    "8cb02ca07cbffc9d004fa40f40431fa0020d749c200f2e2c4778018c8cb055008cf1670fa021"
    "7cb6b13cc80d009e8210178d4519c8cb1f19cb3f5007fa0222cf165006cf1625fa025003cf16"
    "c95005cc2391729171e25008a813a08209c9c380a014bcf2e2c504c98040fb001023c85004fa"
    "0258cf1601cf16ccc9ed540201d4100f00113e910c1c2ebcb8536000c30831c02497c1380074"
    "34c0c05c6c2544d7c0fc03383e903e900c7e800c5c75c87e800c7e800c1cea6d0000b4c7e084"
    "03e29fa954882ea54c4d167c0278208405e3514654882ea58c511100fc02b80d60841657c1ef"
    "2ea4d67c02f817c12103fcbc200475cc36"
)
